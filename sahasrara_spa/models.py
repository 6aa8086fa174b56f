from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Dict, Optional


# Treatment types offered by the spa, in display order (value -> label).
TREATMENT_TYPES: Dict[str, str] = {
    "pijat_bayi": "Pijat Bayi",
    "baby_swimming": "Baby Swimming",
    "perawatan_kulit": "Perawatan Kulit Bayi",
    "stimulasi_sensorik": "Stimulasi Sensorik",
    "yoga_bayi": "Yoga Bayi",
    "paket_lengkap": "Paket Lengkap",
    "aqua_therapy": "Aqua Therapy",
    "baby_gym": "Baby Gym",
}

# External sex code (L = laki-laki, P = perempuan) <-> stored value.
SEX_TO_INTERNAL: Dict[str, str] = {"L": "MALE", "P": "FEMALE"}
SEX_TO_EXTERNAL: Dict[str, str] = {v: k for k, v in SEX_TO_INTERNAL.items()}

ROLES = ("ADMIN", "STAFF", "OWNER")


@dataclass(frozen=True)
class Session:
    """Client-held proof of a successful PIN login."""

    authenticated: bool
    issued_at: datetime
    expires_at: datetime
    remember_me: bool = False
    user_id: Optional[int] = None
    user_name: Optional[str] = None
    user_role: Optional[str] = None

    def is_expired(self, now: datetime) -> bool:
        return self.expires_at <= now
