"""Jenkins connection settings, loaded from the environment (and a .env file)."""

from __future__ import annotations

import os
from dataclasses import dataclass

from dotenv import load_dotenv

_FALSY = ("false", "0", "no")


@dataclass
class JenkinsConfig:
    url: str = ""
    user: str = ""
    token: str = ""
    verify_ssl: bool = True
    timeout: int = 30
    poll_interval: float = 5.0

    @classmethod
    def from_env(cls) -> JenkinsConfig:
        load_dotenv()
        return cls(
            url=os.getenv("JENKINS_URL", "").rstrip("/"),
            user=os.getenv("JENKINS_USER", ""),
            token=os.getenv("JENKINS_TOKEN", ""),
            verify_ssl=os.getenv("JENKINS_VERIFY_SSL", "true").lower() not in _FALSY,
            timeout=int(os.getenv("JENKINS_TIMEOUT", "30")),
            poll_interval=float(os.getenv("JENKINS_POLL_INTERVAL", "5")),
        )

    @property
    def auth(self) -> tuple[str, str]:
        return (self.user, self.token)

    def validate(self) -> None:
        missing = [k for k, v in {
            "JENKINS_URL": self.url,
            "JENKINS_USER": self.user,
            "JENKINS_TOKEN": self.token,
        }.items() if not v]
        if missing:
            raise ValueError(
                f"Missing required environment variables: {', '.join(missing)}. "
                "Copy .env.example to .env and fill in your credentials."
            )
        if self.poll_interval <= 0:
            raise ValueError("JENKINS_POLL_INTERVAL must be a positive number of seconds")
