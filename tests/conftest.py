import pytest

from config import ServerConfig
from tests.helpers import fixed_clock
from web_worker import WebWorker


@pytest.fixture
def docroot(tmp_path):
    pages = tmp_path / "pages"
    pages.mkdir()
    (pages / "404.html").write_text("Not here: <cs371server> on <cs371date>", encoding="utf-8")
    return tmp_path


@pytest.fixture
def config(docroot):
    return ServerConfig(document_root=str(docroot))


@pytest.fixture
def worker(config):
    return WebWorker(config, clock=fixed_clock)
