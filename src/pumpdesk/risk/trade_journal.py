from dataclasses import asdict
from typing import Dict
import os
import pandas as pd
from pumpdesk.core.events import ExitEvent

COLUMNS = [
    'timestamp', 'position_id', 'mint', 'kind', 'reason', 'sell_percent',
    'price', 'pnl_percent', 'mode', 'wallets_ok', 'wallets_failed', 'closed'
]


class TradeJournal:
    """Append-only CSV record of executed exits"""

    def __init__(self, csv_path: str):
        self.csv_path = csv_path
        self.initialize_csv()

    def initialize_csv(self):
        """Create CSV with headers if it doesn't exist"""
        directory = os.path.dirname(self.csv_path)
        if directory:
            os.makedirs(directory, exist_ok=True)
        if not os.path.exists(self.csv_path):
            pd.DataFrame(columns=COLUMNS).to_csv(self.csv_path, index=False)

    def record_exit(self, event: ExitEvent) -> None:
        row = asdict(event)
        row['timestamp'] = event.timestamp.isoformat()
        df = pd.DataFrame([row], columns=COLUMNS)
        df.to_csv(self.csv_path, mode='a', header=False, index=False)

    def load(self) -> pd.DataFrame:
        return pd.read_csv(self.csv_path)

    def summary(self) -> Dict:
        """Exit counts and average PnL per trigger kind"""
        df = self.load()
        if len(df) == 0:
            return {"message": "No exits recorded yet"}

        grouped = df.groupby('kind').agg(
            exits=('position_id', 'count'),
            avg_pnl_percent=('pnl_percent', 'mean'),
            wallets_ok=('wallets_ok', 'sum'),
            wallets_failed=('wallets_failed', 'sum'),
        )
        return {
            "total_exits": int(len(df)),
            "positions_closed": int(df['closed'].astype(bool).sum()),
            "avg_pnl_percent": float(df['pnl_percent'].mean()),
            "by_kind": {
                kind: {
                    "exits": int(row['exits']),
                    "avg_pnl_percent": float(row['avg_pnl_percent']),
                    "wallets_ok": int(row['wallets_ok']),
                    "wallets_failed": int(row['wallets_failed']),
                }
                for kind, row in grouped.iterrows()
            },
        }
