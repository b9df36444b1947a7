"""Shared state and configuration for the servo panel.

Provides:
- Thread-safe per-switch status (ON / OFF / UNKNOWN) written by the panel
- Thread-safe button-pad toggle states and the last status message for the UI
- Configuration defaults merged from an optional JSON file (read-only at runtime)
- Module-level aliases for the config and message getters

ENV:
- SERVOPANEL_CONFIG: optional absolute/relative path to the config.json to use.
  If unset, defaults to a file next to this module.
"""

from __future__ import annotations

import json
import os
import logging
from threading import RLock
from typing import Any, Dict, List, Optional

from servo_types import SwitchState


class PanelState:
    """Process-wide state container for the servo panel.

    Thread-safety:
        All public getters/setters are serialized with a single process-wide
        lock (``PanelState.lock``). The asyncio loop thread writes switch
        statuses while Flask request threads read snapshots.

    Stored values:
        - Status per switch number (missing means UNKNOWN).
        - On/off state per button-pad button.
        - Last status message shown on the panel display.
        - Config dictionary with sane defaults.
    """

    READY_MESSAGE: str = "Servo Controller Ready"

    # Internal state
    _SWITCHES: Dict[int, SwitchState] = {}
    _BUTTONS: Dict[str, bool] = {}
    _MESSAGE: str = READY_MESSAGE

    # Config file path
    _BASE_DIR: str = os.path.dirname(__file__)
    _CONFIG_FILE: str = os.getenv("SERVOPANEL_CONFIG", os.path.join(_BASE_DIR, "config.json"))

    # Defaults (extend safely as features land)
    _DEFAULT_CONFIG: Dict[str, Any] = {
        "ESP_BASE_URL": "http://192.168.81.215",
        "SERVO_PATH": "/servo",
        "COMMAND_TIMEOUT_SEC": 4.0,
        "DRAG_THRESHOLD": 30,
        "CLICK_THRESHOLD_FRACTION": 1.0 / 3.0,
        "RECENTER_DELAY_SEC": 0.2,
        "SWITCH_COUNT": 16,
        "STATE_ENCODING": "switch",
        "ON_ANGLE": 180,
        "OFF_ANGLE": 0,
        "REASON_MAX_CHARS": 100,
        "BUTTON_ANGLES": {
            "up": [0, 45, 90],
            "down": [90, 45, 0],
            "left": [30, 60, 90],
            "right": [90, 120, 150],
            "A": [0, 1, 0],
            "B": [0, 0, 0],
            "start": [90],
            "select": [45, 135],
        },
    }
    _CONFIG: Dict[str, Any] = dict(_DEFAULT_CONFIG)

    # Process-wide lock for all state/config operations (re-entrant!)
    lock: RLock = RLock()

    # ----------------- Switches -----------------
    @classmethod
    def set_switch_status(cls, switch: int, status: SwitchState) -> None:
        """Record the displayed status of a switch (thread-safe)."""
        with cls.lock:
            cls._SWITCHES[int(switch)] = SwitchState(status)

    @classmethod
    def get_switch_status(cls, switch: int) -> SwitchState:
        """Return the status of a switch; UNKNOWN if never commanded (thread-safe)."""
        with cls.lock:
            return cls._SWITCHES.get(int(switch), SwitchState.UNKNOWN)

    @classmethod
    def get_switch_statuses(cls) -> Dict[int, SwitchState]:
        """Snapshot of every switch that has a status (thread-safe)."""
        with cls.lock:
            return dict(cls._SWITCHES)

    # ----------------- Button pad -----------------
    @classmethod
    def flip_button(cls, name: str) -> bool:
        """Toggle a button's on/off state and return the new value (thread-safe)."""
        with cls.lock:
            value = not cls._BUTTONS.get(name, False)
            cls._BUTTONS[name] = value
            return value

    @classmethod
    def get_button_states(cls) -> Dict[str, bool]:
        with cls.lock:
            return dict(cls._BUTTONS)

    # ----------------- Display message -----------------
    @classmethod
    def set_message(cls, msg: str) -> None:
        with cls.lock:
            cls._MESSAGE = str(msg)

    @classmethod
    def get_message(cls) -> str:
        with cls.lock:
            return cls._MESSAGE

    @classmethod
    def reset(cls) -> None:
        """Forget all switch/button state and restore the ready message."""
        with cls.lock:
            cls._SWITCHES = {}
            cls._BUTTONS = {}
            cls._MESSAGE = cls.READY_MESSAGE

    # ----------------- Config -----------------
    @classmethod
    def set_config_path(cls, path: str) -> None:
        """Override the config file path and reload configuration (thread-safe)."""
        with cls.lock:
            cls._CONFIG_FILE = path
            cls.load_config()

    @classmethod
    def load_config(cls) -> None:
        """Load configuration from JSON, merging into defaults (thread-safe)."""
        with cls.lock:
            path = cls._CONFIG_FILE
            try:
                with open(path, "r", encoding="utf-8") as f:
                    data = json.load(f)
                if isinstance(data, dict):
                    cls._CONFIG.update(data)
                else:
                    logging.warning("Config file %s did not contain a JSON object; ignoring.", path)
            except FileNotFoundError:
                # No config file is fine; defaults apply
                pass
            except json.JSONDecodeError as err:
                logging.warning("Failed to parse JSON from %s: %s", path, err)
            except OSError as err:
                logging.warning("Failed to load config %s: %s", path, err)

    @classmethod
    def get_config(cls, key: str) -> Any:
        """Retrieve a configuration value (with fallback to defaults) (thread-safe)."""
        with cls.lock:
            return cls._CONFIG.get(key, cls._DEFAULT_CONFIG.get(key))

    @classmethod
    def update_config(cls, mapping: Dict[str, Any]) -> None:
        """Override configuration values for this process only (thread-safe)."""
        with cls.lock:
            cls._CONFIG.update(mapping)

    @classmethod
    def reset_config(cls) -> None:
        with cls.lock:
            cls._CONFIG = dict(cls._DEFAULT_CONFIG)

    @classmethod
    def button_angles(cls, name: str) -> List[int]:
        """Angle array sent for a button-pad button; [90] when unmapped."""
        table: Optional[Dict[str, Any]] = cls.get_config("BUTTON_ANGLES")
        angles = (table or {}).get(name)
        if not angles:
            return [90]
        return [int(a) for a in angles]

    @classmethod
    def switch_numbers(cls) -> List[int]:
        """Switch numbers shown on the panel (1..SWITCH_COUNT)."""
        count = int(cls.get_config("SWITCH_COUNT"))
        return list(range(1, count + 1))


# ----------------- Aliases -----------------
get_message = PanelState.get_message
get_config = PanelState.get_config

# Load config on import
PanelState.load_config()
