"""
Sample Assembler

Folds decoded `record` messages into an ordered, append-only list of ride
samples.

Devices often leave fields out of a record when the value has not changed
(or the sensor dropped a reading). With carry-forward enabled, which is the
default, every field keeps its most recently decoded value until a later
record supplies a new one. That includes values decoded from records that
had no timestamp of their own. A sample is only produced for records that
carry a timestamp.
"""

from typing import Any, Dict, List, Tuple

from .records import RecordFields, Sample


class SampleAssembler:
    """Builds Sample objects from a stream of RecordFields"""

    def __init__(self, carry_forward: bool = True):
        """
        Args:
            carry_forward: Keep the last known value of fields that a record
                omits. When False, omitted fields are absent from the sample.
        """
        self.carry_forward = carry_forward
        self._last_values: Dict[str, Any] = {}
        self._samples: List[Sample] = []

    def add(self, record: RecordFields) -> None:
        """Fold one decoded record into the sample sequence"""
        if self.carry_forward:
            self._last_values.update(record.present())
            values = dict(self._last_values)
        else:
            values = record.present()

        if record.timestamp is None:
            return

        self._samples.append(Sample(timestamp=record.timestamp, **values))

    @property
    def samples(self) -> Tuple[Sample, ...]:
        return tuple(self._samples)

    def __len__(self) -> int:
        return len(self._samples)
