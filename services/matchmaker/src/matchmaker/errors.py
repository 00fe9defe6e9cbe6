from __future__ import annotations

from matchmaker.models import MessageCode


class RecommendationError(Exception):
    pass


class PreconditionError(RecommendationError):
    code: MessageCode = MessageCode.ERROR


class ProfileNotFound(PreconditionError):
    code = MessageCode.PROFILE_NOT_FOUND

    def __init__(self, user_id: str) -> None:
        super().__init__(f"Seeker profile not found: {user_id}")
        self.user_id = user_id


class ProfileIncomplete(PreconditionError):
    code = MessageCode.PROFILE_INCOMPLETE

    def __init__(self, user_id: str) -> None:
        super().__init__(f"Seeker profile is incomplete: {user_id}")
        self.user_id = user_id


class AIError(RecommendationError):
    pass


class AIUnavailable(AIError):
    pass


class AIRequestFailed(AIError):
    pass


class AIResponseInvalid(AIError):
    pass
