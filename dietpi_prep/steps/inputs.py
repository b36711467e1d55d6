"""Target system inputs, collected by an explicit state machine.

Each state consumes a preset environment value when it validates, otherwise
it blocks on a dialog. A cancelled dialog moves to ``ABORTED``.

    NEED_CREATOR_NAME -> NEED_PREIMAGE_INFO -> NEED_HARDWARE_MODEL
        -> NEED_WIFI_FLAG -> NEED_DISTRO_TARGET -> DONE
"""

from __future__ import annotations

from enum import Enum
from typing import Optional

from dietpi_prep.config.settings import EnvironmentInputs, RESERVED_CREATOR_NAMES
from dietpi_prep.context import PrepContext
from dietpi_prep.domain.hardware import (
    CONTAINER,
    HARDWARE_MODELS,
    VM,
    distro_targets_from,
    get_hardware_model,
)
from dietpi_prep.domain.models import Distro, PrepConfig, PrepInputs
from dietpi_prep.exceptions import PrepAborted
from dietpi_prep.logging import LoggerFactory
from dietpi_prep.ui.whiptail import MenuItem, Prompter


log = LoggerFactory.for_prep()

CREATOR_TEXT = (
    "Please enter your name. This will be used to identify the image creator "
    "within credits banner.\n\nYou can add your contact information as well for "
    "end users.\n\nNB: An entry is required."
)
PREIMAGE_TEXT = (
    "Please enter the name or URL of the pre-image you installed on this system, "
    "prior to running this script. This will be used to identify the pre-image "
    'credits.\n\nEG: Debian, Raspberry Pi OS Lite, Meveric or '
    '"forum.odroid.com/viewtopic.php?t=123456" etc.\n\nNB: An entry is required.'
)
HW_MODEL_TEXT = (
    "Please select the current device this is being installed on:\n"
    ' - NB: Select "Generic device" if not listed.\n'
    ' - "Core devices": Fully supported by DietPi, offering full GPU acceleration + Kodi support.\n'
    ' - "Limited support devices": No GPU acceleration guaranteed.'
)
WIFI_ITEMS: list[MenuItem] = [
    ("0", ": I do not require WiFi functionality, skip related package install."),
    ("1", ": I require WiFi functionality, install related packages."),
]


class InputState(Enum):
    NEED_CREATOR_NAME = "need_creator_name"
    NEED_PREIMAGE_INFO = "need_preimage_info"
    NEED_HARDWARE_MODEL = "need_hardware_model"
    NEED_WIFI_FLAG = "need_wifi_flag"
    NEED_DISTRO_TARGET = "need_distro_target"
    DONE = "done"
    ABORTED = "aborted"


def is_reserved_name(name: str) -> bool:
    """Whether name contains a reserved term, ignoring case."""
    lowered = name.lower()
    return any(term in lowered for term in RESERVED_CREATOR_NAMES)


def hardware_menu_items() -> list[MenuItem]:
    """Hardware models grouped under their category headers."""
    items: list[MenuItem] = []
    category = None
    for model in HARDWARE_MODELS:
        if model.category != category:
            category = model.category
            items.append(("", f"●─ {category} "))
        items.append((str(model.id), f": {model.name}"))
    return items


def parse_hw_model(value: Optional[str]) -> Optional[int]:
    """A model ID from text, only when it is a member of the enumeration."""
    if not value or not value.isdigit():
        return None
    model_id = int(value)
    return model_id if get_hardware_model(model_id) is not None else None


class InputCollector:
    """Drives the input state machine for one run."""

    def __init__(self, prompter: Prompter, environment: EnvironmentInputs, current: Distro):
        self.prompter = prompter
        self.current = current
        self.state = InputState.NEED_CREATOR_NAME

        # Environment values are consumed once; a rejected value falls back to dialogs
        self._env_creator = environment.image_creator
        self._env_preimage = environment.preimage_info
        self._env_hw_model = environment.hw_model
        self._env_wifi = environment.wifi_required
        self._env_distro = environment.distro_target

        self.image_creator: Optional[str] = None
        self.preimage_info: Optional[str] = None
        self.hw_model: Optional[int] = None
        self.wifi_required: Optional[bool] = None
        self.distro_target: Optional[Distro] = None

    def _handlers(self):
        return {
            InputState.NEED_CREATOR_NAME: self._creator_name,
            InputState.NEED_PREIMAGE_INFO: self._preimage_info,
            InputState.NEED_HARDWARE_MODEL: self._hardware_model,
            InputState.NEED_WIFI_FLAG: self._wifi_flag,
            InputState.NEED_DISTRO_TARGET: self._distro_target,
        }

    def step(self) -> InputState:
        """Run the handler of the current state and return the next state."""
        handler = self._handlers()[self.state]
        try:
            self.state = handler()
        except PrepAborted:
            self.state = InputState.ABORTED
        return self.state

    def collect(self) -> PrepInputs:
        while self.state not in (InputState.DONE, InputState.ABORTED):
            self.step()
        if self.state is InputState.ABORTED:
            raise PrepAborted()
        return PrepInputs(
            image_creator=self.image_creator,
            preimage_info=self.preimage_info,
            hw_model=self.hw_model,
            wifi_required=self.wifi_required,
            distro_target=self.distro_target,
        )

    def _ask(self, value: Optional[str]) -> str:
        if value is None:
            raise PrepAborted()
        return value

    # State handlers

    def _creator_name(self) -> InputState:
        if self._env_creator:
            name, self._env_creator = self._env_creator, None
        else:
            name = self._ask(self.prompter.inputbox(CREATOR_TEXT)).strip()
            if not name:
                return InputState.NEED_CREATOR_NAME

        if is_reserved_name(name):
            self.prompter.msgbox(f'"{name}" is reserved and cannot be used. Please try again.')
            return InputState.NEED_CREATOR_NAME

        self.image_creator = name
        log.info(f"Entered image creator: {name}")
        return InputState.NEED_PREIMAGE_INFO

    def _preimage_info(self) -> InputState:
        if self._env_preimage:
            info, self._env_preimage = self._env_preimage, None
        else:
            info = self._ask(self.prompter.inputbox(PREIMAGE_TEXT)).strip()
            if not info:
                return InputState.NEED_PREIMAGE_INFO

        self.preimage_info = info
        log.info(f"Entered pre-image info: {info}")
        return InputState.NEED_HARDWARE_MODEL

    def _hardware_model(self) -> InputState:
        model_id = parse_hw_model(self._env_hw_model)
        self._env_hw_model = None
        if model_id is None:
            selected = self._ask(
                self.prompter.menu(HW_MODEL_TEXT, hardware_menu_items(), default="0")
            )
            model_id = parse_hw_model(selected)
            if model_id is None:
                # A category header was selected
                return InputState.NEED_HARDWARE_MODEL

        self.hw_model = model_id
        log.info(f"Selected hardware model ID: {model_id}")
        return InputState.NEED_WIFI_FLAG

    def _wifi_flag(self) -> InputState:
        if self.hw_model == CONTAINER:
            value = "0"
        elif self._env_wifi in ("0", "1"):
            value = self._env_wifi
        else:
            default = "0" if self.hw_model == VM else "1"
            value = self._ask(
                self.prompter.menu("Please select an option:", WIFI_ITEMS, default=default)
            )
            if value not in ("0", "1"):
                return InputState.NEED_WIFI_FLAG
        self._env_wifi = None

        self.wifi_required = value == "1"
        log.info("Marking WiFi as required" if self.wifi_required else "Marking WiFi as NOT required")
        return InputState.NEED_DISTRO_TARGET

    def _distro_target(self) -> InputState:
        targets = distro_targets_from(self.current)
        by_id = {str(distro.id): distro for distro, _ in targets}

        value = self._env_distro
        self._env_distro = None
        if value not in by_id:
            value = self._ask(
                self.prompter.menu(
                    "Please select a Debian version to install on this system.\n\n"
                    f"Currently installed: {self.current.name} (ID: {self.current.id})",
                    [(str(distro.id), f": {description}") for distro, description in targets],
                    default=str(targets[0][0].id) if targets else None,
                )
            )
            if value not in by_id:
                return InputState.NEED_DISTRO_TARGET

        self.distro_target = by_id[value]
        log.info(f"Selected Debian version: {self.distro_target.name} (ID: {self.distro_target.id})")
        return InputState.DONE


def run(ctx: PrepContext) -> PrepConfig:
    collector = InputCollector(ctx.prompter, ctx.environment, ctx.platform.distro)
    inputs = collector.collect()
    ctx.config = PrepConfig.from_inputs(ctx.platform, ctx.git, inputs)
    return ctx.config
