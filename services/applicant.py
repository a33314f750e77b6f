"""Applicant record: required core fields plus an explicit optional-fields map"""
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

# Optional columns; anything absent is written as NULL
OPTIONAL_FIELDS = (
    'instagram_handle',
    'linkedin_url',
    'referred_by',
    'ip_address',
    'user_agent',
    'utm_source',
)


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


@dataclass
class Applicant:
    first_name: str
    last_name: str
    email: str
    date_of_birth: str
    age_range: str
    neighborhood: str
    occupation: str
    interests: List[str]
    marketing_opt_in: bool = False
    optional: Dict[str, str] = field(default_factory=dict)

    @classmethod
    def from_validated(cls, data: Dict[str, Any], tracking: Optional[Dict[str, Any]] = None) -> 'Applicant':
        """Build from the output of validate_signup_payload plus request tracking metadata"""
        optional = {
            'instagram_handle': data.get('instagram_handle'),
            'linkedin_url': data.get('linkedin_url'),
            'referred_by': data.get('referral_code'),
        }
        optional.update(tracking or {})
        return cls(
            first_name=data['first_name'],
            last_name=data['last_name'],
            email=data['email'].lower(),
            date_of_birth=data['date_of_birth'],
            age_range=data['age_range'],
            neighborhood=data['neighborhood'],
            occupation=data['occupation'],
            interests=list(data['interests']),
            marketing_opt_in=bool(data.get('marketing_opt_in', False)),
            optional={k: v for k, v in optional.items() if k in OPTIONAL_FIELDS and v},
        )

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}"

    @property
    def referred_by(self) -> Optional[str]:
        return self.optional.get('referred_by')

    def to_row(self, referral_code: str, waitlist_position: int) -> Dict[str, Any]:
        """Insert payload for the users table"""
        now = utc_now_iso()
        row = {
            'first_name': self.first_name,
            'last_name': self.last_name,
            'email': self.email,
            'date_of_birth': self.date_of_birth,
            'age_range': self.age_range,
            'neighborhood': self.neighborhood,
            'occupation': self.occupation,
            'interests': self.interests,
            'marketing_opt_in': self.marketing_opt_in,
            'referral_code': referral_code,
            'referral_count': 0,
            'waitlist_position': waitlist_position,
            'payment_completed': False,
            'created_at': now,
            'updated_at': now,
        }
        for name in OPTIONAL_FIELDS:
            row[name] = self.optional.get(name)
        return row
