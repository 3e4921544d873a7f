import pytest

from loanview.catalog import get_default_catalog
from loanview.core.assembler import ResponseAssembler


@pytest.fixture
def catalog():
    return get_default_catalog()


@pytest.fixture
def assembler(catalog):
    return ResponseAssembler(catalog)
