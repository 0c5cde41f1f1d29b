from lazylotto.chain import Chain
from lazylotto.deploy import Deployment, deploy_all
from lazylotto.errors import LottoError, decode_error
from lazylotto.ledger import HBAR, TINYBARS_PER_HBAR, ZERO_ADDRESS
from lazylotto.lotto import LazyLotto
from lazylotto.pool_manager import LazyLottoPoolManager

__version__ = "0.1.0"

__all__ = [
    "Chain",
    "Deployment",
    "HBAR",
    "LazyLotto",
    "LazyLottoPoolManager",
    "LottoError",
    "TINYBARS_PER_HBAR",
    "ZERO_ADDRESS",
    "decode_error",
    "deploy_all",
]
