"""Debug utilities for saving failed attempt data."""

import json
from datetime import datetime
from pathlib import Path
from typing import Any

from shipyard.models.errors import ErrorAnalysis
from shipyard.utils.logging import get_logger

logger = get_logger(__name__)


def save_debug_data(
    directory: str | Path,
    deployment_id: str,
    stage: str,
    data: dict[str, Any],
    pretty: bool = True,
) -> Path:
    """Save debug data to a local file.

    Args:
        directory: Root directory for debug dumps
        deployment_id: The deployment ID
        stage: Label used as the file name prefix (e.g., "attempt_2")
        data: The data to save
        pretty: Whether to pretty-print the JSON

    Returns:
        Path to the saved file
    """
    debug_dir = Path(directory) / deployment_id
    debug_dir.mkdir(parents=True, exist_ok=True)

    timestamp = datetime.utcnow().strftime("%Y%m%d_%H%M%S_%f")
    filepath = debug_dir / f"{stage}_{timestamp}.json"

    with open(filepath, "w", encoding="utf-8") as f:
        if pretty:
            json.dump(data, f, indent=2, default=str)
        else:
            json.dump(data, f, default=str)

    logger.info(
        "debug.data_saved",
        deployment_id=deployment_id,
        stage=stage,
        filepath=str(filepath),
    )

    return filepath


def save_attempt_analysis(
    directory: str | Path,
    deployment_id: str,
    attempt_number: int,
    analysis: ErrorAnalysis,
) -> Path:
    """Save the error analysis of a failed attempt."""
    data = {
        "deployment_id": deployment_id,
        "attempt_number": attempt_number,
        "saved_at": datetime.utcnow().isoformat(),
        "analysis": analysis.model_dump(mode="json"),
    }
    return save_debug_data(directory, deployment_id, f"attempt_{attempt_number}", data)
