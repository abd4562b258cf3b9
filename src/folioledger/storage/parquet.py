from __future__ import annotations

import os
from typing import Dict

import pandas as pd

from ..ledger.model import LedgerSnapshot


def write_parquet(snapshot: LedgerSnapshot, base_dir: str = "data") -> Dict[str, str]:
    """Export transactions and equity history as parquet files; return their paths."""
    os.makedirs(base_dir, exist_ok=True)
    tx_df = pd.DataFrame(
        [tx.to_record() for tx in snapshot.transactions],
        columns=["id", "ticker", "qty", "price", "leverage", "note", "date"],
    )
    hist_df = pd.DataFrame(
        [p.to_record() for p in snapshot.history],
        columns=["date", "port", "sp"],
    )
    paths = {
        "transactions": os.path.join(base_dir, "transactions.parquet"),
        "equity_history": os.path.join(base_dir, "equity_history.parquet"),
    }
    tx_df.to_parquet(paths["transactions"])
    hist_df.to_parquet(paths["equity_history"])
    return paths
