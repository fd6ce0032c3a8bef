"""
Pytest configuration and fixtures for the onboarding tests.

Nothing here talks to a real transform backend; ``FakeTransformBackend``
serves uploads, detection results, submissions and status snapshots from
memory.
"""

import pytest

from onboarding.domain.mapping.state import MappingState
from onboarding.schemas import FileType
from tests.utils.fake_backend import FakeTransformBackend, uploaded_file


@pytest.fixture
def backend():
    return FakeTransformBackend()


@pytest.fixture
def policy_file():
    return uploaded_file(FileType.POLICY)


@pytest.fixture
def claim_file():
    return uploaded_file(FileType.CLAIM)


@pytest.fixture
def full_state(policy_file, claim_file):
    """Mapping state seeded from the default policy and claim suggestions."""
    return MappingState.initialize([policy_file, claim_file])
