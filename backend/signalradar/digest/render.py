from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from html import escape

from signalradar.settings import settings


@dataclass(frozen=True)
class DigestSignal:
    title: str
    type: str
    occurred_at: datetime
    strength_score: float


@dataclass(frozen=True)
class DigestItem:
    account_id: str
    name: str
    country: str | None
    segment: str | None
    score: float
    signals: tuple[DigestSignal, ...]


def _esc(value: object) -> str:
    # quote=True also covers " and '
    return escape("" if value is None else str(value), quote=True)


def _num(v: float) -> str:
    x = float(v or 0.0)
    return str(int(x)) if x.is_integer() else f"{x:.1f}"


def digest_subject(filter_name: str, cadence: str = "daily") -> str:
    return f"{settings.app_name} {cadence.capitalize()} Digest — {filter_name}"


def _signal_li(s: DigestSignal) -> str:
    return (
        f"<li><b>{_esc(s.title)}</b><br/>"
        f'<span style="color:#555">{_esc(s.type)} · {_esc(s.occurred_at.date().isoformat())}'
        f" · strength {_esc(_num(s.strength_score))}</span></li>"
    )


def _item_block(item: DigestItem, window_days: int) -> str:
    sigs = "".join(_signal_li(s) for s in item.signals) or "<li>—</li>"
    return f"""
<div style="border:1px solid #eee;border-radius:12px;padding:14px;margin:12px 0;">
  <div style="display:flex;justify-content:space-between;gap:12px;">
    <div>
      <div style="font-size:16px;font-weight:700;">{_esc(item.name)}</div>
      <div style="color:#555;margin-top:4px;">{_esc(item.segment or "—")} · {_esc(item.country or "—")}</div>
    </div>
    <div style="text-align:right;">
      <div style="font-size:20px;font-weight:800;">{_esc(_num(item.score))}</div>
      <div style="color:#777;">Buying pressure</div>
    </div>
  </div>
  <div style="margin-top:10px;">
    <div style="font-weight:700;margin-bottom:6px;">Recent signals ({window_days} days)</div>
    <ul style="margin:0;padding-left:18px;">{sigs}</ul>
  </div>
</div>"""


def render_digest_html(
    *,
    org_name: str,
    filter_name: str,
    items: list[DigestItem],
    cadence: str = "daily",
    window_days: int | None = None,
) -> str:
    days = int(window_days if window_days is not None else settings.digest_window_days)
    blocks = "".join(_item_block(i, days) for i in items)
    return f"""
<div style="font-family:Arial;max-width:720px;margin:0 auto;padding:18px;">
  <h2 style="margin:0 0 6px 0;">{_esc(settings.app_name)} — {_esc(cadence.capitalize())} Digest</h2>
  <div style="color:#555;margin-bottom:14px;">
    Org: <b>{_esc(org_name)}</b> · Filter: <b>{_esc(filter_name)}</b>
  </div>
  {blocks}
  <div style="color:#777;margin-top:16px;font-size:12px;">
    You are receiving this because email alerts are enabled for your {_esc(cadence)} digest filter.
  </div>
</div>
""".strip()


def render_digest_text(
    *,
    org_name: str,
    filter_name: str,
    items: list[DigestItem],
    cadence: str = "daily",
) -> str:
    """
    Plain-text alternative part. Keep it scannable on mobile.
    """

    lines: list[str] = []
    lines.append(f"{settings.app_name} {cadence.capitalize()} Digest")
    lines.append(f"Org: {org_name} · Filter: {filter_name}")
    lines.append("")
    for i, it in enumerate(items, start=1):
        lines.append(f"{i}. {it.name} ({it.segment or '—'} · {it.country or '—'}) score {_num(it.score)}")
        for s in it.signals:
            lines.append(f"   - {s.title} [{s.type}] {s.occurred_at.date().isoformat()} strength {_num(s.strength_score)}")
    lines.append("")
    lines.append(f"You are receiving this because email alerts are enabled for your {cadence} digest filter.")
    return "\n".join(lines).strip() + "\n"
