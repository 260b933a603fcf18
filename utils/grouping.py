from collections import defaultdict
from typing import Collection, Dict, Iterable, List, TypeVar

T = TypeVar("T")

def group_by_patient(records: Iterable[T], patient_ids: Collection[str]) -> Dict[str, List[T]]:
    """Per-patient slices of `records`, restricted to `patient_ids`."""
    grouped: Dict[str, List[T]] = defaultdict(list)
    for record in records:
        if record.patient_id in patient_ids:
            grouped[record.patient_id].append(record)
    return dict(grouped)
