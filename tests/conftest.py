import pytest
from k1s0_prefab.options import ENV_API_KEY, ENV_API_URL, ENV_API_URL_OVERRIDE, ENV_DATAFILE


@pytest.fixture(autouse=True)
def _clear_prefab_env(monkeypatch: pytest.MonkeyPatch) -> None:
    for name in (ENV_API_KEY, ENV_API_URL, ENV_API_URL_OVERRIDE, ENV_DATAFILE):
        monkeypatch.delenv(name, raising=False)
