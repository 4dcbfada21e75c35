"""Environment marker evaluation for dependency requirements."""

from typing import Dict, Iterable, Optional

from packaging.markers import default_environment
from packaging.requirements import Requirement


def current_environment(overrides: Optional[Dict[str, str]] = None) -> Dict[str, str]:
    """Return the running interpreter's marker environment, with overrides applied."""
    environment = dict(default_environment())
    if overrides:
        environment.update({key: str(value) for key, value in overrides.items()})
    return environment


def evaluate_markers(
    requirement: Requirement,
    environment: Dict[str, str],
    extras: Iterable[str] = (),
) -> bool:
    """Return whether ``requirement`` applies in ``environment``.

    The marker is tried once per active extra of the requirement that
    declared the dependency; with no active extras ``extra`` is empty.
    """
    marker = requirement.marker
    if marker is None:
        return True
    active = sorted(set(extras)) or [""]
    return any(marker.evaluate({**environment, "extra": extra}) for extra in active)
