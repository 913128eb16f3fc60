"""
Chart Series Normalizer.

Turns asset records from the quote adapters into one chart payload:
  - labels: the date axis of the first asset that carries history
  - series: per asset a price line, a 15-period moving average and,
    when the source reports it, a volume series

Moving-average warm-up uses a cumulative (shrinking-window) average so the
series is plottable from the first label; it is never null-padded.
Colors are deterministic: record i of a K-record batch gets hue i*360/K,
even when other records in the batch failed and are not charted.
"""

from datetime import datetime, timezone

MOVING_AVERAGE_WINDOW = 15
VOLUME_COLOR = "rgba(75, 192, 192, 0.6)"
MOVING_AVERAGE_COLOR = "yellow"


def asset_hue(index: int, count: int) -> float:
    if count <= 0:
        return 0.0
    return index * 360 / count


def asset_color(index: int, count: int) -> str:
    hue = asset_hue(index, count)
    if hue == int(hue):
        hue = int(hue)
    return f"hsl({hue}, 70%, 50%)"


def compute_moving_average(values: list, window: int = MOVING_AVERAGE_WINDOW) -> list:
    """
    Trailing moving average with the same length as `values`.
    Before the window fills, points average everything seen so far.
    None inputs are skipped; a window with no numbers yields None.
    """
    result = []
    for i in range(len(values)):
        start = max(0, i - window + 1)
        nums = [v for v in values[start:i + 1] if v is not None]
        result.append(sum(nums) / len(nums) if nums else None)
    return result


def _label(value) -> str:
    if isinstance(value, datetime):
        return value.strftime("%Y-%m-%d")
    return str(value)[:10]


def has_history(records) -> bool:
    if not isinstance(records, list) or not records:
        return False
    return any(isinstance(r, dict) and r.get("history") for r in records)


def _align(history: list, labels: list) -> tuple[list, list]:
    by_date = {}
    for point in history:
        by_date.setdefault(_label(point.get("date")), point)
    prices = []
    volumes = []
    for label in labels:
        point = by_date.get(label)
        prices.append(point.get("price") if point else None)
        volumes.append(point.get("volume") if point else None)
    return prices, volumes


def build_chart_payload(records: list, window: int = MOVING_AVERAGE_WINDOW) -> dict | None:
    """Normalize a list of asset records. Returns None when nothing has history."""
    if not has_history(records):
        return None

    # hue index is the position in the whole batch, failed records included
    charted = [(i, r) for i, r in enumerate(records) if isinstance(r, dict) and r.get("history")]
    labels = [_label(p.get("date")) for p in charted[0][1]["history"]]
    count = len(records)

    price_series = []
    volume_series = []
    for i, asset in charted:
        name = asset.get("symbol") or asset.get("name") or f"Asset {i + 1}"
        prices, volumes = _align(asset["history"], labels)
        color = asset_color(i, count)

        price_series.append({
            "label": name,
            "kind": "price",
            "values": prices,
            "color": color,
        })
        price_series.append({
            "label": f"{name} {window}-Day SMA",
            "kind": "movingAverage",
            "values": compute_moving_average(prices, window),
            "color": MOVING_AVERAGE_COLOR,
        })
        if any(v is not None for v in volumes):
            volume_series.append({
                "label": f"{name} Volume",
                "kind": "volume",
                "values": volumes,
                "color": VOLUME_COLOR,
            })

    symbols = [a.get("symbol") or a.get("name") or "" for _, a in charted]
    return {
        "chartData": {"labels": labels, "series": price_series + volume_series},
        "chartDataPrice": {"labels": labels, "series": price_series},
        "chartDataVolume": {"labels": labels, "series": volume_series},
        "chartTitle": f"{' & '.join(symbols)} Price History",
    }


def is_intraday_chart(result) -> bool:
    return isinstance(result, dict) and isinstance(result.get("grapthData"), list) and bool(result["grapthData"])


def normalize_intraday_chart(result: dict, symbol: str = None) -> dict | None:
    """NSE chart-databyindex payload: grapthData is [[epoch_ms, price], ...]."""
    if not is_intraday_chart(result):
        return None

    labels = []
    prices = []
    for point in result["grapthData"]:
        if not isinstance(point, (list, tuple)) or len(point) < 2:
            continue
        try:
            ts = datetime.fromtimestamp(float(point[0]) / 1000, tz=timezone.utc)
            price = float(point[1])
        except (TypeError, ValueError):
            continue
        labels.append(ts.strftime("%H:%M"))
        prices.append(price)

    if not labels:
        return None

    name = symbol or result.get("name") or result.get("identifier") or "Intraday"
    series = [
        {"label": name, "kind": "price", "values": prices, "color": asset_color(0, 1)},
        {
            "label": f"{name} {MOVING_AVERAGE_WINDOW}-Point SMA",
            "kind": "movingAverage",
            "values": compute_moving_average(prices),
            "color": MOVING_AVERAGE_COLOR,
        },
    ]
    return {
        "chartData": {"labels": labels, "series": series},
        "chartDataPrice": {"labels": labels, "series": series},
        "chartDataVolume": {"labels": labels, "series": []},
        "chartTitle": f"{name} Intraday Price",
    }
