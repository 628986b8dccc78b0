"""Workload types and their container profiles.

The image reference is always taken from the profile, never from caller
input.
"""

from dataclasses import dataclass
from enum import StrEnum

from mediahost.core.errors import InvalidWorkloadTypeError


class WorkloadType(StrEnum):
    """Supported media server products."""

    JELLYFIN = "JELLYFIN"
    PLEX = "PLEX"
    EMBY = "EMBY"


@dataclass(frozen=True)
class WorkloadProfile:
    """Image, internal port and environment for one workload type."""

    image: str
    internal_port: int
    env: tuple[str, ...]

    @property
    def port_key(self) -> str:
        """Docker port key, e.g. "8096/tcp"."""
        return f"{self.internal_port}/tcp"


def parse_workload_type(value: str) -> WorkloadType:
    """Parse a caller-supplied workload type (case-insensitive)."""
    try:
        return WorkloadType(value.strip().upper())
    except ValueError:
        supported = ", ".join(w.value for w in WorkloadType)
        raise InvalidWorkloadTypeError(
            f"Unsupported workload type {value!r} (supported: {supported})"
        ) from None


def workload_profile(
    workload_type: WorkloadType,
    *,
    public_url: str,
    timezone: str = "UTC",
    puid: int = 1000,
    pgid: int = 1000,
) -> WorkloadProfile:
    """Build the container profile for a workload type.

    Args:
        workload_type: Workload to run
        public_url: External URL of the instance (https://{slug}.{domain})
        timezone: TZ passed to the container
        puid: UID the media server runs as
        pgid: GID the media server runs as
    """
    common = (f"TZ={timezone}", f"PUID={puid}", f"PGID={pgid}")

    match workload_type:
        case WorkloadType.JELLYFIN:
            return WorkloadProfile(
                image="jellyfin/jellyfin:latest",
                internal_port=8096,
                env=common + (f"JELLYFIN_PublishedServerUrl={public_url}",),
            )
        case WorkloadType.PLEX:
            return WorkloadProfile(
                image="plexinc/pms-docker:latest",
                internal_port=32400,
                env=common + ("PLEX_CLAIM=", f"ADVERTISE_IP={public_url}:443"),
            )
        case WorkloadType.EMBY:
            return WorkloadProfile(
                image="emby/embyserver:latest",
                internal_port=8096,
                env=common,
            )

    raise InvalidWorkloadTypeError(f"Unsupported workload type {workload_type!r}")
