from __future__ import annotations

from typing import Literal

ActivationType = Literal[
    "proximity",
    "qr",
    "nfc",
    "manual_code",
]

CompletionPolicy = Literal[
    "remove_on_any_answer",
    "keep_until_correct",
    "keep_always",
    "allow_close_without_answer",
]

PenaltyType = Literal["fixed", "time_based"]

ScheduleMode = Literal[
    "absolute_window",
    "start_offset",
    "end_offset",
]

TimerMode = Literal[
    "none",
    "countdown",
    "countup",
    "scheduled_end",
]

AttemptStatus = Literal["correct", "wrong", "submitted"]

ScoreReason = Literal[
    "task_reward",
    "hint_cost",
    "zone_penalty",
    "adjustment",
]

ZonePhase = Literal[
    "OUTSIDE",
    "IN_GRACE",
    "PENALTY_ACTIVE",
]


TeamId = str
TaskId = str
ZoneId = str
DeviceId = str

# Milliseconds since the unix epoch (server or virtual clock).
Millis = int
