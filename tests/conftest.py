"""Shared fixtures."""

from pathlib import Path

import pytest

from stox.codec import load_model

SAMPLE_MODEL = Path(__file__).resolve().parent.parent / "models" / "disperser_assemblage.yaml"


@pytest.fixture
def sample_model():
    """(tree, castings) of the bundled disperser assemblage model."""
    return load_model(SAMPLE_MODEL)


@pytest.fixture
def sample_model_path():
    return SAMPLE_MODEL
