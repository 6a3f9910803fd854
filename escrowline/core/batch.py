from pydantic import BaseModel


class BatchResult(BaseModel):
    """Outcome of one scheduled pass over a record set.

    ``skipped`` counts records whose conditional write matched no row because
    an overlapping run (or a user action) already moved them on.
    """

    succeeded: int = 0
    failed: int = 0
    skipped: int = 0
    failed_ids: list[str] = []

    def record_failure(self, record_id: object) -> None:
        self.failed += 1
        self.failed_ids.append(str(record_id))
