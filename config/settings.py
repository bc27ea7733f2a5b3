# config/settings.py
"""
Configuration system for CardioSense: dataclass sections, JSON profiles,
YAML/JSON import-export and validation.
"""

import json
import os
import logging
from dataclasses import dataclass, asdict
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

import jsonschema
import yaml
from dotenv import load_dotenv

logger = logging.getLogger(__name__)


class ConfigCategory(Enum):
    ACQUISITION = "acquisition"
    SIMULATOR = "simulator"
    SENSOR = "sensor"
    ANALYSIS = "analysis"
    EXPORT = "export"


@dataclass
class AcquisitionConfig:
    """Session timing and buffering"""
    countdown_ms: int = 5000
    tick_ms: int = 20            # 50 Hz poll / flush cadence
    window_capacity: int = 5000
    pending_limit: int = 1000
    ordering: str = "clamp"      # "accept", "clamp", "reject"
    render_window: int = 250


@dataclass
class SimulatorConfig:
    """Synthetic source defaults"""
    target_bpm: float = 72.0
    noise_level: float = 0.05
    min_bpm: float = 40.0
    max_bpm: float = 180.0
    seed: Optional[int] = None


@dataclass
class SensorConfig:
    """Wireless sensor link (HM-10 / CC2541 / ESP32 serial modules)"""
    name_hint: str = ""
    service_uuid: str = "0000ffe0-0000-1000-8000-00805f9b34fb"
    characteristic_uuid: str = "0000ffe1-0000-1000-8000-00805f9b34fb"
    framing: str = "text"        # "text", "binary"
    scan_timeout: float = 10.0
    connection_timeout: float = 10.0


@dataclass
class AnalysisConfig:
    """Interpretation service"""
    enabled: bool = True
    backend: str = "remote"      # "remote", "local"
    endpoint: str = "https://generativelanguage.googleapis.com/v1beta/models"
    model: str = "gemini-3-flash-preview"
    max_points: int = 200
    min_samples: int = 100
    request_timeout: float = 30.0


@dataclass
class ExportConfig:
    """Export and reporting"""
    data_directory: str = "sessions"
    reports_directory: str = "reports"
    csv_delimiter: str = ","
    voltage_precision: int = 4


class CardioSenseConfig:
    """Configuration management system"""

    def __init__(self, config_path: Optional[str] = None):
        self.config_path = Path(config_path) if config_path else Path("config")
        self.config_path.mkdir(parents=True, exist_ok=True)

        self.acquisition = AcquisitionConfig()
        self.simulator = SimulatorConfig()
        self.sensor = SensorConfig()
        self.analysis = AnalysisConfig()
        self.export = ExportConfig()

        self.version = "1.0"
        self.created = datetime.now()
        self.modified = datetime.now()
        self.profile_name = "default"

        self.load_config()

    def load_config(self, profile: str = "default"):
        """Load configuration from file"""
        config_file = self.config_path / f"{profile}.json"

        if config_file.exists():
            try:
                with open(config_file, 'r') as f:
                    data = json.load(f)

                self._update_from_dict(data)
                self.profile_name = profile

                logger.info(f"Configuration loaded from {config_file}")

            except (OSError, ValueError, TypeError) as e:
                logger.error(f"Failed to load configuration: {e}")
                self._load_defaults()
        else:
            logger.info("Using default configuration")
            self._load_defaults()

    def save_config(self, profile: str = None):
        """Save configuration to file"""
        profile = profile or self.profile_name
        config_file = self.config_path / f"{profile}.json"

        data = self._to_dict()
        data['profile_name'] = profile
        data['modified'] = datetime.now().isoformat()

        with open(config_file, 'w') as f:
            json.dump(data, f, indent=2, default=str)

        self.profile_name = profile
        self.modified = datetime.now()

        logger.info(f"Configuration saved to {config_file}")

    def _load_defaults(self):
        self.acquisition = AcquisitionConfig()
        self.simulator = SimulatorConfig()
        self.sensor = SensorConfig()
        self.analysis = AnalysisConfig()
        self.export = ExportConfig()

    def _to_dict(self) -> Dict[str, Any]:
        return {
            "version": self.version,
            "created": self.created.isoformat(),
            "modified": self.modified.isoformat(),
            "acquisition": asdict(self.acquisition),
            "simulator": asdict(self.simulator),
            "sensor": asdict(self.sensor),
            "analysis": asdict(self.analysis),
            "export": asdict(self.export)
        }

    def _update_from_dict(self, data: Dict[str, Any]):
        # sections are merged over the current values so partial profiles work
        if "acquisition" in data:
            self.acquisition = AcquisitionConfig(**{**asdict(self.acquisition), **data["acquisition"]})

        if "simulator" in data:
            self.simulator = SimulatorConfig(**{**asdict(self.simulator), **data["simulator"]})

        if "sensor" in data:
            self.sensor = SensorConfig(**{**asdict(self.sensor), **data["sensor"]})

        if "analysis" in data:
            self.analysis = AnalysisConfig(**{**asdict(self.analysis), **data["analysis"]})

        if "export" in data:
            self.export = ExportConfig(**{**asdict(self.export), **data["export"]})

        if "version" in data:
            self.version = data["version"]

        if "created" in data:
            self.created = datetime.fromisoformat(data["created"])

        if "modified" in data:
            self.modified = datetime.fromisoformat(data["modified"])

    def validate_config(self) -> Tuple[bool, List[str]]:
        """Validate configuration settings"""
        errors = []

        acq = self.acquisition
        if acq.countdown_ms < 0:
            errors.append("Countdown cannot be negative")

        if acq.tick_ms < 1 or acq.tick_ms > 1000:
            errors.append("Tick interval must be between 1-1000 ms")

        if acq.window_capacity < 1:
            errors.append("Window capacity must be positive")

        if acq.pending_limit < 1:
            errors.append("Pending queue limit must be positive")

        if acq.render_window < 1:
            errors.append("Render window must be positive")

        if acq.ordering not in {"accept", "clamp", "reject"}:
            errors.append("Ordering policy must be one of: accept, clamp, reject")

        sim = self.simulator
        if not (sim.min_bpm <= sim.target_bpm <= sim.max_bpm):
            errors.append(f"Target BPM must be between {sim.min_bpm}-{sim.max_bpm}")

        if not (0.0 <= sim.noise_level <= 1.0):
            errors.append("Noise level must be between 0-1")

        if self.sensor.framing not in {"text", "binary"}:
            errors.append("Sensor framing must be 'text' or 'binary'")

        if self.analysis.backend not in {"remote", "local"}:
            errors.append("Analysis backend must be 'remote' or 'local'")

        if self.analysis.max_points < 1:
            errors.append("Analysis max_points must be positive")

        valid, schema_errors = validate_config_with_schema(self._to_dict())
        if not valid:
            errors.extend(schema_errors)

        return len(errors) == 0, errors

    def get_profile_list(self) -> List[str]:
        """Get list of available configuration profiles"""
        return sorted(p.stem for p in self.config_path.glob("*.json"))

    def delete_profile(self, name: str):
        """Delete a configuration profile"""
        if name == "default":
            raise ValueError("Cannot delete default profile")

        profile_file = self.config_path / f"{name}.json"

        if profile_file.exists():
            profile_file.unlink()
            logger.info(f"Deleted configuration profile: {name}")
        else:
            raise FileNotFoundError(f"Profile {name} not found")

    def export_config(self, file_path: str, format: str = "json"):
        """Export configuration to file"""
        path = Path(file_path)
        data = self._to_dict()

        if format.lower() == "json":
            with open(path, 'w') as f:
                json.dump(data, f, indent=2, default=str)
        elif format.lower() == "yaml":
            with open(path, 'w') as f:
                yaml.safe_dump(data, f, default_flow_style=False)
        else:
            raise ValueError(f"Unsupported export format: {format}")

        logger.info(f"Configuration exported to {path}")

    def import_config(self, file_path: str):
        """Import configuration from file"""
        path = Path(file_path)

        if not path.exists():
            raise FileNotFoundError(f"Configuration file not found: {path}")

        with open(path, 'r') as f:
            if path.suffix.lower() == '.json':
                data = json.load(f)
            elif path.suffix.lower() in ['.yaml', '.yml']:
                data = yaml.safe_load(f)
            else:
                raise ValueError(f"Unsupported file format: {path.suffix}")

        previous = self._to_dict()
        self._update_from_dict(data)
        valid, errors = self.validate_config()

        if not valid:
            self._update_from_dict(previous)
            logger.error(f"Failed to import configuration: {errors}")
            raise ValueError(f"Invalid configuration: {errors}")

        logger.info(f"Configuration imported from {path}")

    def reset_to_defaults(self, category: Optional[ConfigCategory] = None):
        """Reset configuration to defaults"""
        if category is None:
            self._load_defaults()
            logger.info("All configuration reset to defaults")
        else:
            if category == ConfigCategory.ACQUISITION:
                self.acquisition = AcquisitionConfig()
            elif category == ConfigCategory.SIMULATOR:
                self.simulator = SimulatorConfig()
            elif category == ConfigCategory.SENSOR:
                self.sensor = SensorConfig()
            elif category == ConfigCategory.ANALYSIS:
                self.analysis = AnalysisConfig()
            elif category == ConfigCategory.EXPORT:
                self.export = ExportConfig()

            logger.info(f"Configuration category {category.value} reset to defaults")

        self.modified = datetime.now()

    def get_config_summary(self) -> Dict[str, Any]:
        return {
            "Profile": self.profile_name,
            "Version": self.version,
            "Last Modified": self.modified.strftime("%Y-%m-%d %H:%M:%S"),
            "Countdown": f"{self.acquisition.countdown_ms / 1000:.0f} s",
            "Cadence": f"{1000 / self.acquisition.tick_ms:.0f} Hz",
            "Window": f"{self.acquisition.window_capacity} samples",
            "Simulated Rate": f"{self.simulator.target_bpm:.0f} bpm",
            "Sensor Framing": self.sensor.framing,
            "Analysis": self.analysis.backend if self.analysis.enabled else "Disabled"
        }


# Predefined configuration profiles
DEMO_PROFILE = {
    "acquisition": {
        "countdown_ms": 1000,
        "window_capacity": 1000
    },
    "simulator": {
        "target_bpm": 72.0,
        "noise_level": 0.05
    },
    "analysis": {
        "backend": "local"
    }
}

SENSOR_PROFILE = {
    "acquisition": {
        "countdown_ms": 5000,
        "window_capacity": 5000,
        "ordering": "clamp"
    },
    "sensor": {
        "framing": "text",
        "scan_timeout": 15.0
    },
    "analysis": {
        "backend": "remote"
    }
}


def create_default_profiles(config_path: str = "config"):
    """Create default configuration profiles"""
    config_dir = Path(config_path)
    config_dir.mkdir(parents=True, exist_ok=True)

    profiles = {
        "demo": DEMO_PROFILE,
        "sensor": SENSOR_PROFILE
    }

    for name, profile_data in profiles.items():
        profile_file = config_dir / f"{name}.json"

        if not profile_file.exists():
            with open(profile_file, 'w') as f:
                json.dump(profile_data, f, indent=2)

            logger.info(f"Created default profile: {name}")


CONFIG_SCHEMA = {
    "type": "object",
    "properties": {
        "acquisition": {
            "type": "object",
            "properties": {
                "countdown_ms": {"type": "integer", "minimum": 0},
                "tick_ms": {"type": "integer", "minimum": 1, "maximum": 1000},
                "window_capacity": {"type": "integer", "minimum": 1},
                "pending_limit": {"type": "integer", "minimum": 1},
                "ordering": {"type": "string", "enum": ["accept", "clamp", "reject"]},
                "render_window": {"type": "integer", "minimum": 1}
            }
        },
        "simulator": {
            "type": "object",
            "properties": {
                "target_bpm": {"type": "number", "exclusiveMinimum": 0},
                "noise_level": {"type": "number", "minimum": 0, "maximum": 1}
            }
        },
        "sensor": {
            "type": "object",
            "properties": {
                "framing": {"type": "string", "enum": ["text", "binary"]}
            }
        }
    },
    "required": ["acquisition", "simulator"]
}


def validate_config_with_schema(config_data: Dict[str, Any]) -> Tuple[bool, List[str]]:
    """Validate configuration against JSON schema"""
    try:
        jsonschema.validate(config_data, CONFIG_SCHEMA)
        return True, []
    except jsonschema.ValidationError as e:
        return False, [e.message]


def get_api_key() -> str:
    """Interpretation service key from the environment or a local .env file"""
    load_dotenv()
    return os.getenv("GEMINI_API_KEY") or os.getenv("API_KEY") or ""


def create_config(profile: str = "default", config_path: str = None) -> CardioSenseConfig:
    """Create configuration instance with specified profile"""
    config = CardioSenseConfig(config_path)

    if profile != "default":
        config.load_config(profile)

    return config
