from dataclasses import dataclass
from typing import Tuple


def alarm_stabilization(current_alarm: bool,
                        current_defect: bool,
                        consecutive_ctr: int,
                        on_threshold: int,
                        off_threshold: int) -> Tuple[bool, int]:
    """
    Debounces a flapping boolean defect signal into a stable alarm.

    A disagreement between the observed defect and the current alarm has to be
    seen on consecutive polls before the alarm follows it. Raising the alarm
    needs on_threshold consecutive defects, clearing it needs off_threshold
    consecutive clean observations. Any poll that agrees with the alarm resets
    the counter.

    Args:
        current_alarm (bool): Alarm state after the previous poll.
        current_defect (bool): Raw defect observed by this poll.
        consecutive_ctr (int): Counter returned by the previous poll.
        on_threshold (int): Consecutive defects required to raise the alarm.
        off_threshold (int): Consecutive non-defects required to clear it.

    Returns:
        tuple[bool, int]: The new alarm state and counter. The caller keeps both
        for the next poll; this function holds no state.

    Raises:
        ValueError: If a threshold is not a positive integer.
    """
    if on_threshold < 1 or off_threshold < 1:
        raise ValueError("Alarm thresholds must be positive integers")

    new_alarm = current_alarm

    if current_alarm != current_defect:
        consecutive_ctr += 1
        threshold = off_threshold if current_alarm else on_threshold
        if consecutive_ctr >= threshold:
            new_alarm = not current_alarm
            consecutive_ctr = 0
    else:
        consecutive_ctr = 0

    return new_alarm, consecutive_ctr


@dataclass
class AlarmState:
    """
    Alarm and counter owned by one poller.

    Not thread-safe: share an instance between pollers only behind a lock.
    """
    alarm: bool = False
    counter: int = 0

    def update(self, defect: bool, on_threshold: int, off_threshold: int) -> bool:
        """Feed one observation; returns True when the alarm flipped."""
        previous = self.alarm
        self.alarm, self.counter = alarm_stabilization(
            self.alarm, defect, self.counter, on_threshold, off_threshold)
        return self.alarm != previous
