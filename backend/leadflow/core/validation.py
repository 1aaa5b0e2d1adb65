"""
Startup Provider Checks
Verifies store, call, payment and relay settings before serving requests
"""
import logging
from dataclasses import dataclass
from typing import List, Optional, Tuple

from leadflow.core.config import Settings, get_settings

logger = logging.getLogger(__name__)


@dataclass
class ValidationResult:
    """Outcome of one settings check."""
    provider: str
    setting: str
    is_valid: bool
    message: str

    @property
    def is_warning(self) -> bool:
        return self.is_valid and self.message.startswith("WARNING")


@dataclass(frozen=True)
class _Check:
    provider: str
    setting: str
    label: str
    # What degrades when an optional setting is missing; None means required
    degraded: Optional[str] = None


CHECKS: Tuple[_Check, ...] = (
    _Check("store", "supabase_url", "Supabase store"),
    _Check("store", "supabase_service_key", "Supabase store"),
    _Check("call_provider", "retell_api_key", "Retell call provider"),
    _Check("payment_provider", "stripe_secret_key", "Stripe payments", "auto-refill runs in mock mode"),
    _Check("relay", "workflow_relay_url", "Workflow relay", "notifications are dropped"),
    _Check("cron", "cron_secret", "Cron secret", "auto-start endpoint is disabled"),
)


class ProviderValidator:
    """
    Missing required settings are errors. Missing optional settings are
    warnings, and errors in strict (production) mode.
    """

    def __init__(self, settings: Optional[Settings] = None, strict: bool = False):
        self.settings = settings or get_settings()
        self.strict = strict
        self.results: List[ValidationResult] = []

    def validate_all(self) -> Tuple[bool, List[ValidationResult]]:
        self.results = [self._evaluate(check) for check in CHECKS]
        return all(r.is_valid for r in self.results), self.results

    def _evaluate(self, check: _Check) -> ValidationResult:
        if getattr(self.settings, check.setting, None):
            return ValidationResult(check.provider, check.setting, True, f"{check.label} configured")
        if check.degraded is None:
            return ValidationResult(
                check.provider, check.setting, False,
                f"{check.label} requires {check.setting.upper()} to be set"
            )
        return ValidationResult(
            check.provider, check.setting, not self.strict,
            f"WARNING: {check.label} not configured ({check.degraded})"
        )

    def log_results(self) -> None:
        for r in self.results:
            if not r.is_valid:
                logger.error(f"  ✗ [{r.provider}] {r.message}")
            elif r.is_warning:
                logger.warning(f"  ⚠ [{r.provider}] {r.message}")
            else:
                logger.info(f"  ✓ [{r.provider}] {r.message}")

    def get_error_summary(self) -> Optional[str]:
        failed = [f"  - {r.setting}: {r.message}" for r in self.results if not r.is_valid]
        if not failed:
            return None
        return "\n".join(["Provider configuration errors:", *failed])


def validate_providers_on_startup(strict: bool = False, settings: Optional[Settings] = None) -> None:
    """
    Raises:
        RuntimeError: a required setting is missing (or, in strict mode, any)
    """
    validator = ProviderValidator(settings=settings, strict=strict)
    all_valid, _ = validator.validate_all()
    validator.log_results()

    if not all_valid:
        raise RuntimeError(validator.get_error_summary())

    logger.info("Provider settings validated")
