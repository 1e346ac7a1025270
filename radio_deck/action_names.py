"""Centralized action identifier constants.

These ids are what the display surface sends as bare trigger events and what
the external mapping subsystem puts in the ``id`` field of mapped action
envelopes. All ids are lower snake case.
"""

from __future__ import annotations


class ActionNames:
    """Action identifiers understood by the command layer."""

    # -------------------------------------------------------------------------
    # VFO
    # -------------------------------------------------------------------------

    TUNE_UP = "tune_up"
    """Raise the frequency by the current tuning step (value: tick count)."""

    TUNE_DOWN = "tune_down"
    """Lower the frequency by the current tuning step (value: tick count)."""

    STEP_UP = "step_up"
    """Select the next larger tuning step."""

    STEP_DOWN = "step_down"
    """Select the next smaller tuning step."""

    SET_MODE = "set_mode"
    """Switch to the demodulation mode given as value."""

    NEXT_MODE = "next_mode"
    """Cycle to the next demodulation mode."""

    # -------------------------------------------------------------------------
    # DSP / TX
    # -------------------------------------------------------------------------

    TOGGLE_NB = "toggle_nb"
    TOGGLE_NR = "toggle_nr"
    TOGGLE_TX = "toggle_tx"

    # -------------------------------------------------------------------------
    # Memory
    # -------------------------------------------------------------------------

    MEMORY_STORE = "memory_store"
    """Store frequency and mode into the slot given as value (1-8)."""

    MEMORY_RECALL = "memory_recall"
    """Tune to the slot given as value (1-8)."""

    # -------------------------------------------------------------------------
    # Screen navigation
    # -------------------------------------------------------------------------

    SHOW_SCREEN = "show_screen"
    SHOW_VFO = "show_vfo"
    SHOW_DSP = "show_dsp"
    SHOW_MEMORY = "show_memory"
    SHOW_TX = "show_tx"
    SHOW_POTA = "show_pota"
