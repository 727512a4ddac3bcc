import configparser
import io

import pytest

import clipdecode
from db_logger import DBLogger

TRANSFORMS = clipdecode.PROJECT_ROOT / "transforms"


@pytest.fixture
def transforms_folder():
    return str(TRANSFORMS)


@pytest.fixture
def cfg():
    return clipdecode.load_ini(str(TRANSFORMS))


@pytest.fixture
def registry(cfg):
    return clipdecode.scan_transforms(str(TRANSFORMS), cfg)


@pytest.fixture
def db(tmp_path):
    logger = DBLogger(str(tmp_path))
    yield logger
    logger.stop()


@pytest.fixture
def out():
    return io.StringIO()


@pytest.fixture
def ini():
    def _ini(text: str) -> configparser.ConfigParser:
        parser = configparser.ConfigParser()
        parser.read_string(text)
        return parser
    return _ini
