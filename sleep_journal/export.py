"""CSV export of journal entries."""

from typing import Iterable

import pandas as pd

EXPORT_FILENAME = "sleep-journal-export.csv"

EXPORT_COLUMNS = {
    "date": "Fecha",
    "rating": "Nota",
    "comments": "Comentarios",
    "start_time": "Hora inicio",
    "end_time": "Hora fin",
    "created_at": "Creado",
    "updated_at": "Actualizado",
}


def entries_to_csv(records: Iterable[dict]) -> str:
    """Render entry dicts (as produced by `SleepLog.to_dict`) as CSV text.

    Missing optional values are written as empty cells. Comments are quoted
    when they contain separators, quotes or newlines.
    """
    df = pd.DataFrame(list(records), columns=list(EXPORT_COLUMNS))
    df = df.rename(columns=EXPORT_COLUMNS)
    return df.to_csv(index=False, lineterminator="\n")
