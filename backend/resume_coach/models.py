from dataclasses import dataclass, field
from typing import Optional, Dict, Any
import asyncio
import time

from resume_coach.services.controllers import FormController


@dataclass
class Session:
    session_id: str
    controller: FormController
    created_at: float = field(default_factory=lambda: time.time())
    touched_at: float = field(default_factory=lambda: time.time())
    task: Optional[asyncio.Task] = None

    @property
    def form(self) -> str:
        return self.controller.form

    def touch(self) -> None:
        self.touched_at = time.time()

    def expired(self, now: float, ttl: float) -> bool:
        # a session with a stage in flight is never dropped
        if self.controller.busy:
            return False
        return now - self.touched_at > ttl

    def snapshot(self) -> Dict[str, Any]:
        return {"session_id": self.session_id, **self.controller.snapshot()}
