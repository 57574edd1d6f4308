"""
Pytest configuration and fixtures for Tollgate tests.

This module provides shared fixtures used across unit and integration
tests.
"""

import re
from pathlib import Path
from typing import Any

import pytest

from tollgate.policy import PolicyRegistry


class RecordingCache(dict):
    """A dict that records every key written through setdefault()."""

    def __init__(self) -> None:
        super().__init__()
        self.writes: list[str] = []

    def setdefault(self, key: str, default: Any = None) -> Any:
        if key not in self:
            self.writes.append(key)
        return super().setdefault(key, default)

    def writes_matching(self, pattern: str) -> list[str]:
        return [key for key in self.writes if re.search(pattern, key)]


@pytest.fixture
def shared_cache() -> RecordingCache:
    """A fresh shared cache that records its writes."""
    return RecordingCache()


@pytest.fixture
def registry() -> PolicyRegistry:
    """An isolated policy registry."""
    return PolicyRegistry()


@pytest.fixture
def vehicle_policy_yaml() -> str:
    """Return a policy document modelled on vehicle access rules."""
    return """
name: VehicleDocumentPolicy
conditions:
  - name: owns
    scope: none
    score: 0
  - name: has_access_to
    score: 3
  - name: intoxicated
    scope: user
    score: 5
  - name: old_enough_to_drive
  - name: has_driving_license
rules:
  - when: owns
    enable: [drive_vehicle, sell_vehicle]
  - when: has_access_to
    enable: [drive_vehicle]
  - when: ~old_enough_to_drive
    prevent: [drive_vehicle]
  - when: intoxicated
    prevent: [drive_vehicle]
  - when: ~has_driving_license
    prevent: [drive_vehicle]
"""


@pytest.fixture
def vehicle_policy_file(tmp_path: Path, vehicle_policy_yaml: str) -> Path:
    """Write the vehicle policy document to a temporary file."""
    path = tmp_path / "vehicle.yaml"
    path.write_text(vehicle_policy_yaml)
    return path
