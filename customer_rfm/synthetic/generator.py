from __future__ import annotations

import math
import random
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from typing import Dict, List, Optional

#: Column headers of generated rows, shaped like a retail invoice export.
CUSTOMER_COLUMN = "Customer ID"
DATE_COLUMN = "Invoice Date"
QUANTITY_COLUMN = "Quantity"
PRICE_COLUMN = "Unit Price"
INVOICE_COLUMN = "Invoice"


@dataclass(frozen=True)
class RowScenario:
    """Configuration for raw invoice-row generation.

    Attributes
    ----------
    mean_orders: Average orders per customer over the whole window.
    mean_unit_price: Average item price used to sample line items.
    price_variability: Coefficient in (0, 1] controlling price variance.
    quantity_mean: Average quantity per line.
    missing_customer_rate: Share of rows with a blank customer id.
    bad_date_rate: Share of rows with an unparseable date string.
    return_rate: Share of rows with a negative quantity (returns).
    seed: Optional RNG seed for reproducibility.
    """

    mean_orders: float = 4.0
    mean_unit_price: float = 30.0
    price_variability: float = 0.4
    quantity_mean: float = 1.3
    missing_customer_rate: float = 0.0
    bad_date_rate: float = 0.0
    return_rate: float = 0.0
    seed: Optional[int] = None


def _sample_price(rng: random.Random, mean: float, variability: float) -> float:
    variability = min(max(variability, 0.01), 1.0)
    # Log-normal-ish by exponentiating a normal draw for positivity
    sigma = variability
    mu = math.log(max(mean, 0.01)) - 0.5 * sigma * sigma
    price = math.exp(rng.normalvariate(mu, sigma))
    return round(max(price, 0.01), 2)


def _sample_quantity(rng: random.Random, mean_q: float) -> int:
    q = max(1.0, rng.lognormvariate(mu=math.log(max(mean_q, 0.1)), sigma=0.5))
    return max(1, int(round(q)))


def _sample_order_count(rng: random.Random, mean_orders: float) -> int:
    # Geometric draw: heavy-tailed like real repeat-purchase counts, minimum 1
    p = 1.0 / max(mean_orders, 1.0)
    count = 1
    while rng.random() > p:
        count += 1
    return count


def generate_rows(
    n_customers: int,
    start: date,
    end: date,
    *,
    scenario: Optional[RowScenario] = None,
    max_rows: Optional[int] = None,
) -> List[Dict[str, object]]:
    """Generate raw invoice rows for ``n_customers`` between ``start`` and ``end``.

    Values are strings as a CSV reader would deliver them. Scenario rates
    inject the data-quality problems the normaliser must absorb: blank ids,
    unparseable dates and negative (returned) quantities.
    """

    if n_customers <= 0:
        return []
    if start > end:
        raise ValueError("start date must be <= end date")
    scenario = scenario or RowScenario()
    rng = random.Random(scenario.seed)
    total_days = (end - start).days + 1

    rows: List[Dict[str, object]] = []
    invoice_seq = 1
    for i in range(n_customers):
        customer_id = f"C-{i + 1:05d}"
        for _ in range(_sample_order_count(rng, scenario.mean_orders)):
            day = start + timedelta(days=rng.randrange(total_days))
            ts = datetime(day.year, day.month, day.day, rng.randrange(8, 20), rng.randrange(60))
            quantity = _sample_quantity(rng, scenario.quantity_mean)
            if rng.random() < scenario.return_rate:
                quantity = -quantity
            row: Dict[str, object] = {
                INVOICE_COLUMN: f"INV-{invoice_seq:07d}",
                CUSTOMER_COLUMN: customer_id,
                DATE_COLUMN: ts.strftime("%Y-%m-%d %H:%M"),
                QUANTITY_COLUMN: str(quantity),
                PRICE_COLUMN: f"{_sample_price(rng, scenario.mean_unit_price, scenario.price_variability):.2f}",
            }
            if rng.random() < scenario.missing_customer_rate:
                row[CUSTOMER_COLUMN] = ""
            if rng.random() < scenario.bad_date_rate:
                row[DATE_COLUMN] = "not a date"
            rows.append(row)
            invoice_seq += 1
            if max_rows is not None and len(rows) >= max_rows:
                return rows
    return rows
