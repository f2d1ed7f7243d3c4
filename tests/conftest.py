import logging
import os
import pathlib
import sys
import pytest


# Ensure repo root is on PYTHONPATH for direct package imports (e.g. `import cidreg`).
_REPO_ROOT = pathlib.Path(__file__).resolve().parents[1]
if str(_REPO_ROOT) not in sys.path:
    sys.path.insert(0, str(_REPO_ROOT))

from cidreg.accounts import Account  # noqa: E402
from cidreg.activation import activate  # noqa: E402
from cidreg.config import ConfigManager, SettingsStore  # noqa: E402
from cidreg.genesis import ManualClock  # noqa: E402
from cidreg.issuer import InMemoryAssetIssuer  # noqa: E402
from cidreg.ledger import InMemoryLedger  # noqa: E402

GENESIS = 1_700_000_000
BASE_PRICE = 10
STARTING_FUNDS = 1_000_000

_CONFIG_ENV_VARS = (
    "CIDREG_ENABLED",
    "CIDREG_BASE_PRICE",
    "CIDREG_CID_TYPE",
    "CIDREG_ADMIN_ADDRESS",
    "CIDREG_TREASURY_ADDRESS",
    "CIDREG_LOG_LEVEL",
    "CIDREG_LOG_FORMAT",
)


def _env_flag(name: str) -> bool:
    v = (os.environ.get(name) or '').strip().lower()
    return v in {'1', 'true', 'yes', 'y', 'on'}


def pytest_configure(config: pytest.Config) -> None:
    config.addinivalue_line(
        "markers",
        "slow: slow correctness tests (skipped unless CIDREG_RUN_SLOW=1)",
    )


def pytest_collection_modifyitems(config: pytest.Config, items: list) -> None:
    run_slow = _env_flag('CIDREG_RUN_SLOW')

    for item in items:
        if 'slow' in item.keywords and not run_slow:
            item.add_marker(pytest.mark.skip(reason='slow tests skipped; set CIDREG_RUN_SLOW=1 to enable'))


@pytest.fixture(autouse=True)
def _isolated_config_env(monkeypatch):
    """Config values bound to CIDREG_* env vars must not leak in from the host."""
    for name in _CONFIG_ENV_VARS:
        monkeypatch.delenv(name, raising=False)


# ─────────────────────────────────────────────────────────────────────────────
# Registry fixtures
# ─────────────────────────────────────────────────────────────────────────────


@pytest.fixture
def clock():
    return ManualClock(GENESIS)


@pytest.fixture
def admin():
    return Account.from_label("admin")


@pytest.fixture
def treasury():
    return Account.from_label("treasury")


@pytest.fixture
def alice():
    return Account.from_label("alice")


@pytest.fixture
def bob():
    return Account.from_label("bob")


@pytest.fixture
def carol():
    return Account.from_label("carol")


@pytest.fixture
def ledger(alice, bob, carol):
    ledger = InMemoryLedger()
    for account in (alice, bob, carol):
        ledger.deposit(account.address, STARTING_FUNDS)
    return ledger


@pytest.fixture
def issuer():
    return InMemoryAssetIssuer()


@pytest.fixture
def settings(admin, treasury):
    manager = ConfigManager()
    manager.set("accounts.admin_address", admin.address)
    manager.set("accounts.treasury_address", treasury.address)
    manager.set("registration.base_price", BASE_PRICE)
    return SettingsStore(manager)


@pytest.fixture
def engine(settings, ledger, issuer, clock):
    return activate(
        settings,
        ledger,
        issuer,
        clock=clock,
        authority_account=Account.from_label("authority"),
    )


@pytest.fixture
def genesis_time():
    return GENESIS


@pytest.fixture
def base_price():
    return BASE_PRICE


@pytest.fixture
def starting_funds():
    return STARTING_FUNDS


@pytest.fixture(autouse=True)
def _detach_registry_log_handlers():
    """Handlers installed by configure_logging must not outlive the test's streams."""
    yield
    root = logging.getLogger("cidreg")
    for handler in list(root.handlers):
        if getattr(handler, "_cidreg_handler", False):
            root.removeHandler(handler)
