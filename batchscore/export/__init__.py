from .csv_exporter import results_to_csv, save_report, statistics_to_csv

__all__ = ["results_to_csv", "statistics_to_csv", "save_report"]
