"""UI layer -- Rich dashboard and output formatters."""

from .dashboard import (
    ProgressDisplay,
    console,
    create_histogram,
    format_reading,
    print_aim_scores,
    print_config,
    print_final_results,
    print_header,
    print_speed_history,
)
from .output import (
    create_result_json,
    format_csv_header,
    format_csv_row,
    format_text_result,
    save_json,
)

__all__ = [
    "ProgressDisplay",
    "console",
    "create_histogram",
    "create_result_json",
    "format_csv_header",
    "format_csv_row",
    "format_reading",
    "format_text_result",
    "print_aim_scores",
    "print_config",
    "print_final_results",
    "print_header",
    "print_speed_history",
    "save_json",
]
