"""
Token usage tracker for ranking oracle calls.
Persists token consumption to PostgreSQL (and optionally CSV).
"""

import csv
import logging
from pathlib import Path
from datetime import datetime
from typing import Optional
import threading

from config import settings

logger = logging.getLogger(__name__)

# OpenAI pricing (as of 2025) - USD per 1M tokens
PRICING = {
    'gpt-4o': {'input': 2.50, 'output': 10.00},
    'gpt-4o-mini': {'input': 0.150, 'output': 0.600},
    'gpt-4-turbo': {'input': 10.00, 'output': 30.00},
    'gpt-3.5-turbo': {'input': 0.50, 'output': 1.50},
}


def calculate_cost(model: str, input_tokens: int, output_tokens: int) -> float:
    """
    Calculate cost in USD based on model pricing.

    Unknown models are priced as gpt-4o-mini.
    """
    model_pricing = PRICING.get(model, PRICING['gpt-4o-mini'])
    input_cost = (input_tokens / 1_000_000) * model_pricing['input']
    output_cost = (output_tokens / 1_000_000) * model_pricing['output']
    return input_cost + output_cost


class TokenTracker:
    """Track oracle token usage in the database and/or a CSV file."""

    def __init__(self, store=None, log_file: str = "logs/token_usage.csv", enable_csv: Optional[bool] = None):
        """
        Initialize token tracker.

        Args:
            store: Optional CatalogDatabase with log_token_usage()
            log_file: Path to CSV log file
            enable_csv: Write CSV rows (defaults to TOKEN_TRACKER_ENABLE_CSV)
        """
        if enable_csv is None:
            enable_csv = settings.TOKEN_TRACKER_ENABLE_CSV

        self.store = store
        self.enable_csv = enable_csv
        self.log_file = Path(log_file) if enable_csv else None
        self.lock = threading.Lock()
        self.total_input_tokens = 0
        self.total_output_tokens = 0
        self.total_cost = 0.0
        self.calls = 0

        if self.enable_csv and self.log_file and not self.log_file.exists():
            self.log_file.parent.mkdir(parents=True, exist_ok=True)
            with open(self.log_file, 'w', newline='', encoding='utf-8') as f:
                csv.writer(f).writerow([
                    'timestamp', 'model', 'operation',
                    'input_tokens', 'output_tokens', 'total_tokens', 'cost_usd'
                ])

    def log_usage(
        self,
        model: str,
        operation: str,
        input_tokens: int,
        output_tokens: int,
        timestamp: Optional[datetime] = None,
    ) -> float:
        """
        Record one oracle call.

        Args:
            model: Model name (e.g., "gpt-4o-mini")
            operation: Operation description (e.g., "rank_bulk:Business")
            input_tokens: Number of input tokens used
            output_tokens: Number of output tokens used
            timestamp: Override timestamp (defaults to now)

        Returns:
            Cost of the call in USD
        """
        timestamp = timestamp or datetime.now()
        cost = calculate_cost(model, input_tokens, output_tokens)

        with self.lock:
            self.total_input_tokens += input_tokens
            self.total_output_tokens += output_tokens
            self.total_cost += cost
            self.calls += 1

        if self.store is not None:
            try:
                self.store.log_token_usage(
                    model=model,
                    operation=operation,
                    input_tokens=input_tokens,
                    output_tokens=output_tokens,
                    cost_usd=cost,
                    timestamp=timestamp,
                )
            except Exception as e:
                # Usage accounting must never break a ranking call
                logger.warning(f"Failed to persist token usage for {operation}: {e}")

        if self.enable_csv and self.log_file:
            try:
                with self.lock:
                    with open(self.log_file, 'a', newline='', encoding='utf-8') as f:
                        csv.writer(f).writerow([
                            timestamp.isoformat(),
                            model,
                            operation,
                            input_tokens,
                            output_tokens,
                            input_tokens + output_tokens,
                            f"{cost:.6f}"
                        ])
            except OSError as e:
                logger.warning(f"Failed to write token usage CSV: {e}")

        return cost

    def get_summary(self) -> dict:
        """Totals for this tracker's lifetime."""
        with self.lock:
            return {
                'total_input_tokens': self.total_input_tokens,
                'total_output_tokens': self.total_output_tokens,
                'total_tokens': self.total_input_tokens + self.total_output_tokens,
                'total_cost': self.total_cost,
                'calls': self.calls,
            }
