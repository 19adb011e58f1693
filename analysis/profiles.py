"""
Analysis options and device emulation profiles.

Desktop and mobile each have a fixed emulation profile: viewport, pixel ratio,
user agent and throttling. The defaults mirror what the engine uses for its
own "desktop" and "mobile" presets.
"""

from dataclasses import dataclass, field
from typing import Optional

from config.settings import settings
from models.enums import Category, FormFactor

ALL_CATEGORIES: tuple[str, ...] = tuple(c.value for c in Category)

# On-demand audits only run the SEO category by default: a full five-category
# run takes several times longer and the client is actively polling.
ON_DEMAND_CATEGORIES: tuple[str, ...] = (Category.SEO.value,)

SKIPPED_AUDITS = ["uses-http2", "bf-cache", "performance-budget", "timing-budget"]

DESKTOP_USER_AGENT = (
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/109.0.0.0 Safari/537.36"
)
MOBILE_USER_AGENT = (
    "Mozilla/5.0 (Linux; Android 11; moto g power (2022)) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/109.0.0.0 Mobile Safari/537.36"
)


@dataclass(frozen=True)
class DeviceProfile:
    form_factor: FormFactor
    width: int
    height: int
    device_scale_factor: float
    user_agent: str
    throttling: dict

    def screen_emulation(self) -> dict:
        return {
            "mobile": self.form_factor == FormFactor.MOBILE,
            "width": self.width,
            "height": self.height,
            "deviceScaleFactor": self.device_scale_factor,
            "disabled": False,
        }


DEVICE_PROFILES: dict[FormFactor, DeviceProfile] = {
    FormFactor.DESKTOP: DeviceProfile(
        form_factor=FormFactor.DESKTOP,
        width=1350,
        height=940,
        device_scale_factor=1,
        user_agent=DESKTOP_USER_AGENT,
        throttling={
            "rttMs": 40,
            "throughputKbps": 10240,
            "cpuSlowdownMultiplier": 1,
        },
    ),
    FormFactor.MOBILE: DeviceProfile(
        form_factor=FormFactor.MOBILE,
        width=412,
        height=823,
        device_scale_factor=1.75,
        user_agent=MOBILE_USER_AGENT,
        throttling={
            "rttMs": 150,
            "throughputKbps": 1638.4,
            "cpuSlowdownMultiplier": 4,
        },
    ),
}


@dataclass(frozen=True)
class AnalysisOptions:
    categories: tuple[str, ...] = ALL_CATEGORIES
    form_factor: FormFactor = FormFactor.DESKTOP
    retries: int = field(default_factory=lambda: settings.ANALYSIS_RETRIES)
    timeout: float = field(default_factory=lambda: settings.ANALYSIS_TIMEOUT)
    warmup: float = field(default_factory=lambda: settings.ANALYSIS_WARMUP)

    @property
    def max_attempts(self) -> int:
        return self.retries + 1

    @property
    def device(self) -> DeviceProfile:
        return DEVICE_PROFILES[self.form_factor]

    @classmethod
    def on_demand(
        cls, categories: Optional[list[str]] = None, form_factor: str = FormFactor.DESKTOP.value
    ) -> "AnalysisOptions":
        return cls(
            categories=tuple(categories) if categories else ON_DEMAND_CATEGORIES,
            form_factor=FormFactor(form_factor),
        )


def engine_config(options: AnalysisOptions) -> dict:
    """Build the audit engine's configuration for one run."""
    device = options.device
    return {
        "extends": "lighthouse:default",
        "settings": {
            "maxWaitForLoad": 45000,
            "maxWaitForFcp": 15000,
            "pauseAfterFcpMs": 1000,
            "pauseAfterLoadMs": 1000,
            "networkQuietThresholdMs": 1000,
            "cpuQuietThresholdMs": 1000,
            "formFactor": device.form_factor.value,
            "screenEmulation": device.screen_emulation(),
            "emulatedUserAgent": device.user_agent,
            "throttling": device.throttling,
            "throttlingMethod": "simulate",
            "onlyCategories": list(options.categories),
            "skipAudits": SKIPPED_AUDITS,
            "disableStorageReset": True,
        },
    }
