"""
Row-oriented CSV rendering of scan results for downloads.
"""
from typing import Iterable

from .models import LosersScanResult, ScanCategory, ScanResult


def render_fno_csv(result: ScanResult) -> str:
    lines = [
        f"NSE FnO Options Scanner - {result.scan_timestamp}",
        f"Expiry: {result.expiry}",
        f"Total: {result.total_symbols} | Scanned: {result.total_scanned_successfully} | "
        f"Qualified: {result.stocks_meeting_conditions} | Time: {result.scan_time:.2f}s",
        "",
        "BULLISH TOP 10",
        "Rank,Symbol,CE_OL,PE_OH",
    ]
    lines += [f"{i},{s.symbol},{s.ce_ol},{s.pe_oh}" for i, s in enumerate(result.bullish, 1)]
    lines += ["", "BEARISH TOP 10", "Rank,Symbol,PE_OL,CE_OH"]
    lines += [f"{i},{s.symbol},{s.pe_ol},{s.ce_oh}" for i, s in enumerate(result.bearish, 1)]
    return "\n".join(lines)


def render_losers_csv(result: LosersScanResult) -> str:
    lines = [
        f"Top Losers OH Scanner - {result.scan_timestamp}",
        f"Total FOSec Stocks: {result.total_fosec_stocks} | EQ Stocks with Open=High: "
        f"{result.qualified_stocks} | Time: {result.scan_time:.2f}s",
        "",
        "Symbol,Open,High,Low,LTP,Change %,Volume",
    ]
    for s in result.stocks:
        lines.append(f"{s.symbol},{s.open:.2f},{s.high:.2f},{s.low:.2f},{s.ltp:.2f},{s.change:.2f},{s.volume:g}")
    return "\n".join(lines)


def render_history_csv(results: Iterable, category: ScanCategory) -> str:
    """One row per ranked entry (fno) or per stock (losers) across all stored scans."""
    if ScanCategory(category) is ScanCategory.FNO:
        lines = ["Timestamp,Expiry,Type,Rank,Symbol,Col1,Col2"]
        for r in results:
            lines += [
                f"{r.scan_timestamp},{r.expiry},BULLISH,{i},{s.symbol},{s.ce_ol},{s.pe_oh}"
                for i, s in enumerate(r.bullish, 1)
            ]
            lines += [
                f"{r.scan_timestamp},{r.expiry},BEARISH,{i},{s.symbol},{s.pe_ol},{s.ce_oh}"
                for i, s in enumerate(r.bearish, 1)
            ]
    else:
        lines = ["Timestamp,Symbol,Open,High,Low,LTP,Change %,Volume"]
        for r in results:
            lines += [
                f"{r.scan_timestamp},{s.symbol},{s.open},{s.high},{s.low},{s.ltp},{s.change},{s.volume:g}"
                for s in r.stocks
            ]
    return "\n".join(lines)


def render_result_csv(result, category: ScanCategory) -> str:
    if ScanCategory(category) is ScanCategory.FNO:
        return render_fno_csv(result)
    return render_losers_csv(result)


def csv_filename(result, category: ScanCategory) -> str:
    prefix = "fno_scan" if ScanCategory(category) is ScanCategory.FNO else "losers_oh"
    stamp = result.scan_timestamp.replace(":", "_").replace(" ", "_")
    return f"{prefix}_{stamp}.csv"
