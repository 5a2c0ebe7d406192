from wealth_drive.data.loader import (
    MarketDataset,
    bars_to_frame,
    dataset_stats,
    enrich_frame,
    frame_to_bars,
    load_dataset,
    parse_bar,
    parse_bars,
    synthetic_bars,
)

__all__ = [
    "MarketDataset",
    "bars_to_frame",
    "dataset_stats",
    "enrich_frame",
    "frame_to_bars",
    "load_dataset",
    "parse_bar",
    "parse_bars",
    "synthetic_bars",
]
