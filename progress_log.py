import logging
from contextlib import ContextDecorator
from typing import Optional


class InvestorProgress(ContextDecorator):
    """Per-investor progress lines: [START] on enter, stage OK/FAIL/SKIP, [DONE] on exit.

    Exceptions raised inside the block are logged against the investor and then
    propagate unchanged.
    """

    def __init__(self, name: str, category: Optional[str] = None, logger: Optional[logging.Logger] = None):
        self.name = name
        self.category = category
        self.log = logger or logging.getLogger()

    def __enter__(self):
        if self.category:
            self.log.info("[START] %s (%s)", self.name, self.category)
        else:
            self.log.info("[START] %s", self.name)
        return self

    def stage(self, stage: str, ok: bool, error: Optional[str] = None) -> None:
        label = stage.upper()
        if ok:
            self.log.info("  [%s OK] %s", label, self.name)
        else:
            self.log.warning("  [%s FAIL] %s: %s", label, self.name, error or "unknown error")

    def skipped(self, stage: str) -> None:
        self.log.info("  [%s SKIP] %s", stage.upper(), self.name)

    def __exit__(self, exc_type, exc, tb):
        if exc:
            self.log.error("[DONE] %s (aborted: %s)", self.name, exc)
        else:
            self.log.info("[DONE] %s", self.name)
        return False
