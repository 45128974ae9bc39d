from __future__ import annotations


class WellmedError(Exception):
    pass


class InvalidInput(WellmedError):
    pass


class ClassifierUnavailable(WellmedError):
    pass


class ClassifierAmbiguous(WellmedError):
    def __init__(self, answer: str) -> None:
        super().__init__(f"Classifier answer is neither affirmative nor negative: {answer!r}")
        self.answer = answer


class GenerationFailure(WellmedError):
    def __init__(self, status_code: int, detail: str) -> None:
        super().__init__(detail)
        self.status_code = status_code
        self.detail = detail


class InternalFailure(WellmedError):
    pass


class ProviderError(WellmedError):
    def __init__(self, status_code: int, detail: str) -> None:
        super().__init__(detail)
        self.status_code = status_code
        self.detail = detail
