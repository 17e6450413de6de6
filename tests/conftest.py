"""
Pytest configuration and fixtures.
Adds src/ to Python path so tests can import the pumpdesk package.
"""

import logging
import sys
from pathlib import Path

import pytest

repo_root = Path(__file__).parent.parent
src_path = repo_root / "src"
if str(src_path) not in sys.path:
    sys.path.insert(0, str(src_path))

tests_path = Path(__file__).parent
if str(tests_path) not in sys.path:
    sys.path.insert(0, str(tests_path))

from solders.keypair import Keypair  # noqa: E402

from pumpdesk.execution.signer import WalletSigner  # noqa: E402


@pytest.fixture
def logger():
    return logging.getLogger("pumpdesk.tests")


@pytest.fixture
def signers():
    """Five fresh wallets"""
    return [WalletSigner(Keypair()) for _ in range(5)]


@pytest.fixture
def signer(signers):
    return signers[0]
