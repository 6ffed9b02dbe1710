from collectors.base import Collector, CollectorError
from collectors.alerts import AlertsCollector
from collectors.gauges import GaugesCollector
from collectors.traffic import TrafficCollector
from collectors.weather import WeatherCollector
from config.settings import Config
from orchestrator.runner import CollectorUnit
from storage.db import Storage


def build_units(storage: Storage, config: Config) -> list[CollectorUnit]:
    """The collector units for one run, in result order."""
    collectors: list[Collector] = [
        WeatherCollector(storage, config),
        AlertsCollector(storage, config),
        TrafficCollector(storage, config),
        GaugesCollector(storage, config),
    ]
    return [CollectorUnit(c.name(), c.collect) for c in collectors]


__all__ = [
    "Collector",
    "CollectorError",
    "AlertsCollector",
    "GaugesCollector",
    "TrafficCollector",
    "WeatherCollector",
    "build_units",
]
