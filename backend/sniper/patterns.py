"""Market-structure detectors (BOS, CHoCH, sweeps, FVG, order blocks).

All detectors are pure functions over a bar window (newest last).
They never mutate their input, and a window that is too short yields
the "nothing detected" result instead of an error.
"""

from dataclasses import dataclass
from typing import Literal, Sequence

from sniper.models import Bar

StructureType = Literal["bull", "bear", "none"]

BOS_DEFAULT_LOOKBACK = 6
BOS_STRENGTH_CAP = 50.0
BOS_STRONG_THRESHOLD = 10.0
CHOCH_BODY_MULT = 1.2
SWEEP_WICK_MULT = 1.5
FVG_TRIPLETS = 3
ORDER_BLOCK_LOOKBACK = 10

# Confluence points
BOS_STRONG_POINTS = 8
BOS_WEAK_POINTS = 4
CHOCH_POINTS = 6
SWEEP_POINTS = 6
FVG_POINTS = 5
ORDER_BLOCK_POINTS = 4


@dataclass(slots=True, frozen=True)
class StructureBreak:
    type: StructureType = "none"
    strength: float = 0.0  # basis points beyond the prior extreme, capped

    @property
    def detected(self) -> bool:
        return self.type != "none"


@dataclass(slots=True, frozen=True)
class LiquiditySweep:
    detected: bool = False
    direction: StructureType = "none"
    magnitude: float = 0.0  # dominant wick length


@dataclass(slots=True, frozen=True)
class FairValueGap:
    type: StructureType = "none"
    top: float = 0.0
    bottom: float = 0.0

    @property
    def detected(self) -> bool:
        return self.type != "none"


@dataclass(slots=True, frozen=True)
class OrderBlock:
    top: float
    bottom: float
    source_time: int


@dataclass(slots=True, frozen=True)
class ConfluenceResult:
    score: int
    bos: StructureBreak
    choch: bool
    sweep: LiquiditySweep
    fvg: FairValueGap
    order_block: OrderBlock | None

    def describe(self) -> list[str]:
        """Short labels for the structures that fired."""
        labels = []
        if self.bos.detected:
            labels.append(f"BOS {self.bos.type}({self.bos.strength:.1f})")
        if self.choch:
            labels.append("CHoCH")
        if self.sweep.detected:
            labels.append(f"sweep {self.sweep.direction}")
        if self.fvg.detected:
            labels.append(f"FVG {self.fvg.type}")
        if self.order_block is not None:
            labels.append("OB")
        return labels


def break_of_structure(
    bars: Sequence[Bar],
    lookback: int = BOS_DEFAULT_LOOKBACK,
) -> StructureBreak:
    """Detect a break of structure on the newest bar.

    The newest bar must take out the extreme of the reference bars
    (the window minus its last two bars) and close beyond the
    previous bar's close.
    """
    if lookback < 1 or len(bars) < lookback + 2:
        return StructureBreak()

    window = bars[-(lookback + 2):]
    reference = window[:-2]
    prev, last = window[-2], window[-1]

    ref_high = max(b.high for b in reference)
    ref_low = min(b.low for b in reference)

    if last.high > ref_high and last.close > prev.close:
        return StructureBreak("bull", _excursion_bps(last.high - ref_high, ref_high))
    if last.low < ref_low and last.close < prev.close:
        return StructureBreak("bear", _excursion_bps(ref_low - last.low, ref_low))
    return StructureBreak()


def _excursion_bps(excursion: float, reference: float) -> float:
    if reference <= 0:
        return 0.0
    return min(BOS_STRENGTH_CAP, excursion / reference * 10_000)


def change_of_character(bars: Sequence[Bar]) -> bool:
    """Abrupt reversal: a larger body in the opposite direction."""
    if len(bars) < 2:
        return False
    prev, last = bars[-2], bars[-1]
    if prev.body == 0 or last.body == 0:
        return False
    opposite = (prev.body > 0) != (last.body > 0)
    return opposite and last.body_size >= prev.body_size * CHOCH_BODY_MULT


def liquidity_sweep(bars: Sequence[Bar]) -> LiquiditySweep:
    """Long wick on the newest bar relative to the prior bar's body."""
    if len(bars) < 2:
        return LiquiditySweep()
    prev, last = bars[-2], bars[-1]
    threshold = prev.body_size * SWEEP_WICK_MULT
    upper, lower = last.upper_wick, last.lower_wick

    if upper <= threshold and lower <= threshold:
        return LiquiditySweep()
    if lower > upper:
        return LiquiditySweep(True, "bear", lower)
    return LiquiditySweep(True, "bull", upper)


def fair_value_gap(bars: Sequence[Bar]) -> FairValueGap:
    """Unfilled imbalance inside one of the last three triplets.

    For a triplet starting at bar i, a bullish gap is
    bars[i].high < bars[i+1].low and a bearish gap is
    bars[i].low > bars[i+1].high. Newest triplet wins.
    """
    n = len(bars)
    if n < 3:
        return FairValueGap()

    first_start = max(0, n - 2 - FVG_TRIPLETS)
    for i in range(n - 3, first_start - 1, -1):
        a, b = bars[i], bars[i + 1]
        if a.high < b.low:
            return FairValueGap("bull", top=b.low, bottom=a.high)
        if a.low > b.high:
            return FairValueGap("bear", top=a.low, bottom=b.high)
    return FairValueGap()


def refine_order_block(
    bars: Sequence[Bar],
    lookback: int = ORDER_BLOCK_LOOKBACK,
) -> OrderBlock | None:
    """Largest-bodied bar of the recent window as a reaction zone."""
    window = bars[-lookback:] if lookback > 0 else []
    best: Bar | None = None
    for bar in window:
        if bar.body_size > 0 and (best is None or bar.body_size > best.body_size):
            best = bar
    if best is None:
        return None
    return OrderBlock(
        top=max(best.open, best.close),
        bottom=min(best.open, best.close),
        source_time=best.time,
    )


def confluence_score(bars: Sequence[Bar]) -> ConfluenceResult:
    """Additive structure boost for the scoring engine.

    Not a probability: callers add it to the heuristic score as is.
    """
    bos = break_of_structure(bars)
    choch = change_of_character(bars)
    sweep = liquidity_sweep(bars)
    fvg = fair_value_gap(bars)
    order_block = refine_order_block(bars)

    score = 0
    if bos.detected:
        score += BOS_STRONG_POINTS if bos.strength >= BOS_STRONG_THRESHOLD else BOS_WEAK_POINTS
    if choch:
        score += CHOCH_POINTS
    if sweep.detected:
        score += SWEEP_POINTS
    if fvg.detected:
        score += FVG_POINTS
    if order_block is not None:
        score += ORDER_BLOCK_POINTS

    return ConfluenceResult(
        score=score,
        bos=bos,
        choch=choch,
        sweep=sweep,
        fvg=fvg,
        order_block=order_block,
    )
