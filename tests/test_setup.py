"""Test that the project setup is working correctly."""

import crypto_mover_tracker


def test_version() -> None:
    """Test that version is defined."""
    assert crypto_mover_tracker.__version__ == "0.1.0"


def test_import_modules() -> None:
    """Test that all submodules can be imported."""
    from crypto_mover_tracker import alerter
    from crypto_mover_tracker import api
    from crypto_mover_tracker import detector
    from crypto_mover_tracker import ingestor
    from crypto_mover_tracker import predictor
    from crypto_mover_tracker import research
    from crypto_mover_tracker import storage

    # Just verify imports work
    assert ingestor is not None
    assert detector is not None
    assert predictor is not None
    assert research is not None
    assert alerter is not None
    assert storage is not None
    assert api is not None
