"""
insurance_dues/progression.py - Per-Law Pension Progression Calculators

Replays a pension's history from its entitlement date forward and records
every change as a ``ProgressionStep``:
- initial pension assembly
- Law 30/1992 addition (Laws 79/108)
- uplift ("مادة الرفع") and the minimum-pension floor at entitlement
- periodic percentage bonuses with min/max caps and floor top-ups
- Law 112/Sadat fixed values, April 2011 grant and the 134 supplement

Each law builds its own event list and supplies its own ``apply_event``;
``replay_events`` folds the events into steps. Missing tables give an empty
``ProgressionData`` instead of an exception.

Author: Pension Dues Project
License: MIT
"""

from dataclasses import dataclass, replace
from datetime import date
from typing import Callable, Dict, List, Optional, Tuple
import logging

from .dates import format_for_display
from .models import (
    AllProgressions,
    EventType,
    InsuranceDuesForm,
    LawType,
    MinimumUplift,
    ProgressionData,
    ProgressionStep,
    ProgressionSummary,
    ReferenceProgression,
)
from .rules import (
    APRIL_2011,
    FLOOR_ENFORCEMENT_START,
    JANUARY_2012,
    JULY_2011,
    LAW_112_APRIL_2011_GRANT,
    LAW_112_BASE_PENSION,
    LAW_112_JANUARY_2012_ADDITION,
    LAW_112_SUPPLEMENT_TARGET,
    LAW_148_UPLIFT_CONSTANT,
    REFERENCE_CUTOFF,
    UPLIFT_START,
    FixedPensionSchedule,
    applicable_exceptional_grants,
    clamp_bonus,
    flat_uplift_112,
    formula_uplift,
    is_bonus_exception,
    law30_addition,
    uplift_constant,
)
from .tables import BonusRow, MinimumPensionRow, TableSet, resolve_bonus_table_name, resolve_minimum_pension

logger = logging.getLogger(__name__)


MONTHLY_GRANT = 10.0

MSG_NO_PROGRESSION = "لم يتمكن من حساب تدرج المعاش. يرجى مراجعة المدخلات."

DESC_AT_ENTITLEMENT = 'المعاش عند الاستحقاق'
DESC_BASIC_AT_ENTITLEMENT = 'المعاش الأساسي عند الاستحقاق'
DESC_NORMAL_BASIC = 'المعاش الأساسي الطبيعي'
DESC_FIXED_PERIOD = 'قيمة المعاش الأساسي للمعاشات المستحقة في الفترة'
DESC_LAW30 = 'إضافة قانون 30 لسنة 1992'
DESC_UPLIFT = 'إضافة مادة الرفع'
DESC_FLOOR_AT_ENTITLEMENT = 'إضافة فرق رفع الحد الأدنى عند الاستحقاق'
DESC_FLOOR_AT_ENTITLEMENT_112 = 'فرق رفع الحد الأدنى عند الاستحقاق'
DESC_INJURY = 'إضافة المعاش الأساسي الإصابي'
DESC_APRIL_2011 = 'علاوة ابريل 2011'
DESC_SUPPLEMENT_134 = 'إضافة مبلغ تكميلي للمعاش إلى 134 جنيه'
DESC_FIXED_ADDITION = 'إضافة مبلغ ثابت'


# =============================================================================
# EVENT REPLAY
# =============================================================================

@dataclass(frozen=True)
class PensionState:
    """Running pension split into the basic and variable channels."""
    basic: float = 0.0
    variable: float = 0.0

    @property
    def total(self) -> float:
        return self.basic + self.variable

    def add(self, amount: float) -> 'PensionState':
        return PensionState(self.basic + amount, self.variable)


@dataclass(frozen=True)
class TimelineEvent:
    """A dated pension-affecting event awaiting replay."""
    date: date
    event_type: EventType
    description: str
    amount: float = 0.0
    bonus: Optional[BonusRow] = None
    enforce_floor: bool = False


ApplyEvent = Callable[[PensionState, TimelineEvent], Tuple[PensionState, List[ProgressionStep]]]


def replay_events(initial_state: PensionState, events: List[TimelineEvent],
                  apply_event: ApplyEvent) -> List[ProgressionStep]:
    """
    Fold an ordered event stream into progression steps.

    Args:
        initial_state: Pension before the first event
        events: Events in replay order
        apply_event: Returns the new state and the steps an event produced
            (none when the event leaves the pension unchanged)

    Returns:
        Steps in replay order
    """
    state = initial_state
    steps: List[ProgressionStep] = []
    for event in events:
        state, produced = apply_event(state, event)
        steps.extend(produced)
    return steps


def _sorted_events(events: List[TimelineEvent]) -> List[TimelineEvent]:
    # Stable: same-date events keep insertion order.
    return sorted(events, key=lambda e: e.date)


# =============================================================================
# SHARED HELPERS
# =============================================================================

def _floor_top_up(pension: float, on: date, minimum_rows: List[MinimumPensionRow]) -> float:
    floor = resolve_minimum_pension(on, minimum_rows)
    return floor - pension if pension < floor else 0.0


def _initial_step(on: date, description: str, pension: float) -> ProgressionStep:
    return ProgressionStep(
        date=on, description=description, pension_before=0.0,
        bonus_amount=pension, min_uplift=0.0, pension_after=pension,
        event_type=EventType.INITIAL,
    )


def _additive_step(event: TimelineEvent, before: float, amount: float,
                   min_uplift: float = 0.0, on: Optional[date] = None) -> ProgressionStep:
    return ProgressionStep(
        date=on or event.date,
        description=event.description,
        pension_before=before,
        bonus_amount=amount,
        min_uplift=min_uplift,
        pension_after=before + amount + min_uplift,
        bonus_percentage=event.bonus.percentage_label if event.bonus else None,
        event_type=event.event_type,
    )


def _bonus_events(rows: List[BonusRow], floor_from: Optional[date]) -> List[TimelineEvent]:
    """Bonus rows as events; the floor applies from ``floor_from`` (None = always)."""
    return [
        TimelineEvent(
            date=row.date, event_type=EventType.BONUS, description=row.description,
            bonus=row, enforce_floor=floor_from is None or row.date >= floor_from,
        )
        for row in rows
    ]


def _apply_formula_event(state: PensionState, event: TimelineEvent,
                         minimum_rows: List[MinimumPensionRow],
                         split_bonus_base: bool = False) -> Tuple[PensionState, List[ProgressionStep]]:
    """
    Event semantics shared by Laws 79, 108 and 148.

    Every event lands in the basic channel. With ``split_bonus_base`` bonuses
    dated before April 2011 are computed on the basic channel only.
    """
    before = state.total

    if event.event_type == EventType.ADDITION:
        return state.add(event.amount), [_additive_step(event, before, event.amount)]

    if event.event_type == EventType.UPLIFT:
        value = formula_uplift(event.amount, before)
        return state.add(value), [_additive_step(event, before, value)]

    if event.event_type == EventType.MINIMUM_UPLIFT:
        top_up = _floor_top_up(before, event.date, minimum_rows)
        if top_up <= 0:
            return state, []
        return state.add(top_up), [_additive_step(event, before, 0.0, top_up)]

    if event.event_type == EventType.BONUS:
        bonus = event.bonus
        base = state.basic if split_bonus_base and event.date < APRIL_2011 else before
        amount = clamp_bonus(base, bonus.percentage, bonus.minimum, bonus.maximum)
        top_up = _floor_top_up(before + amount, event.date, minimum_rows) if event.enforce_floor else 0.0
        return state.add(amount + top_up), [_additive_step(event, before, amount, top_up)]

    raise ValueError(f"Unsupported event type for this law: {event.event_type}")


def _summarize(summary: ProgressionSummary, steps: List[ProgressionStep],
               entitlement: date) -> ProgressionSummary:
    uplifts = [s for s in steps if s.event_type == EventType.UPLIFT]
    if uplifts:
        summary.uplift_value = uplifts[-1].bonus_amount
    summary.minimum_pension_uplifts = [
        MinimumUplift(s.date, s.min_uplift) for s in steps if s.min_uplift > 0
    ]
    summary.monthly_grant = MONTHLY_GRANT
    summary.exceptional_grants = applicable_exceptional_grants(entitlement)
    return summary


def _entitlement_events(entitlement: date, constant: float, floor_description: str,
                        with_floor: bool) -> List[TimelineEvent]:
    events = [TimelineEvent(entitlement, EventType.UPLIFT, DESC_UPLIFT, amount=constant)]
    if with_floor:
        events.append(TimelineEvent(entitlement, EventType.MINIMUM_UPLIFT, floor_description))
    return events


# =============================================================================
# LAW 79 / 1975
# =============================================================================

def calculate_law79(form: InsuranceDuesForm, tables: TableSet,
                    bonus_table_name: str) -> ProgressionData:
    """
    Law 79/1975 timeline with separate basic and variable channels.

    The variable channel (variable pension + special bonuses) never grows,
    but joins the bonus base from April 2011 onwards.
    """
    bonus_rows = tables.bonus_rows(bonus_table_name)
    minimum_rows = tables.minimum_rows()
    entitlement = form.entitlement_date
    if bonus_rows is None or minimum_rows is None or entitlement is None:
        logger.debug(f"Law 79 progression unavailable (table '{bonus_table_name}')")
        return ProgressionData.empty()

    seed = PensionState(form.basic_channel, form.variable_channel)
    summary = ProgressionSummary(
        basic_pension_at_entitlement=form.basic_channel,
        variable_pension_at_entitlement=form.variable_channel,
        initial_normal_basic_pension=form.normal_basic_pension,
        initial_injury_pension=form.injury_basic_pension,
        initial_variable_pension=form.variable_pension,
        initial_special_bonuses=form.special_bonuses,
    )

    at_entitlement: List[TimelineEvent] = []
    law30 = law30_addition(entitlement, form.normal_basic_pension)
    if law30 is not None:
        at_entitlement.append(TimelineEvent(entitlement, EventType.ADDITION, DESC_LAW30, amount=law30))

    later = _bonus_events([r for r in bonus_rows if r.date > entitlement], FLOOR_ENFORCEMENT_START)
    if entitlement >= UPLIFT_START:
        at_entitlement += _entitlement_events(
            entitlement, uplift_constant(entitlement), DESC_FLOOR_AT_ENTITLEMENT,
            with_floor=entitlement >= FLOOR_ENFORCEMENT_START,
        )
    else:
        later.append(TimelineEvent(UPLIFT_START, EventType.UPLIFT, DESC_UPLIFT,
                                   amount=uplift_constant(entitlement)))

    def apply_event(state, event):
        return _apply_formula_event(state, event, minimum_rows, split_bonus_base=True)

    steps = [_initial_step(entitlement, DESC_AT_ENTITLEMENT, seed.total)]
    steps += replay_events(seed, at_entitlement + _sorted_events(later), apply_event)
    return ProgressionData(_summarize(summary, steps, entitlement), steps)


# =============================================================================
# LAW 108 / 1976
# =============================================================================

def calculate_law108(form: InsuranceDuesForm, tables: TableSet,
                     bonus_table_name: str) -> ProgressionData:
    """
    Law 108/1976 timeline.

    Pre-July-2010 entitlements take their bonuses up to and including July
    2010 before the 2010 uplift; bonuses between July 2010 and April 2011
    do not apply.
    """
    bonus_rows = tables.bonus_rows(bonus_table_name)
    minimum_rows = tables.minimum_rows()
    entitlement = form.entitlement_date
    if bonus_rows is None or minimum_rows is None or entitlement is None:
        logger.debug(f"Law 108 progression unavailable (table '{bonus_table_name}')")
        return ProgressionData.empty()

    seed = PensionState(form.normal_basic_pension)
    summary = ProgressionSummary(
        basic_pension_at_entitlement=form.normal_basic_pension,
        initial_normal_basic_pension=form.normal_basic_pension,
    )

    events: List[TimelineEvent] = []
    law30 = law30_addition(entitlement, form.normal_basic_pension)
    if law30 is not None:
        events.append(TimelineEvent(entitlement, EventType.ADDITION, DESC_LAW30, amount=law30))

    if entitlement < UPLIFT_START:
        early = [r for r in bonus_rows if entitlement < r.date < UPLIFT_START]
        july_2010 = [r for r in bonus_rows if r.date == UPLIFT_START][:1]
        events += _bonus_events(early + july_2010, FLOOR_ENFORCEMENT_START)
        events.append(TimelineEvent(UPLIFT_START, EventType.UPLIFT, DESC_UPLIFT,
                                    amount=uplift_constant(entitlement)))
    else:
        events += _entitlement_events(
            entitlement, uplift_constant(entitlement), DESC_FLOOR_AT_ENTITLEMENT,
            with_floor=entitlement >= FLOOR_ENFORCEMENT_START,
        )

    subsequent = [r for r in bonus_rows if r.date >= APRIL_2011 and r.date > entitlement]
    events += _bonus_events(subsequent, FLOOR_ENFORCEMENT_START)

    def apply_event(state, event):
        return _apply_formula_event(state, event, minimum_rows)

    steps = [_initial_step(entitlement, DESC_BASIC_AT_ENTITLEMENT, seed.total)]
    steps += replay_events(seed, events, apply_event)
    return ProgressionData(_summarize(summary, steps, entitlement), steps)


# =============================================================================
# LAW 112 / 1980 AND SADAT
# =============================================================================

def calculate_law112(entitlement: Optional[date], law: LawType, tables: TableSet) -> ProgressionData:
    """
    Law 112/1980 (and Sadat) timeline; the pension does not depend on input amounts.

    Before July 2010 the pension follows the fixed-value schedule, merged with
    the July 2010 uplift, the April 2011 grant and later bonuses. From July
    2010 the base is 70 plus a flat uplift. Bonuses always enforce the floor.
    """
    minimum_rows = tables.minimum_rows()
    all_bonuses = tables.bonus_rows(tables.current_bonus_table_name)
    if minimum_rows is None or all_bonuses is None or entitlement is None:
        logger.debug("Law 112 progression unavailable")
        return ProgressionData.empty()

    bonus_start = JANUARY_2012 if entitlement < APRIL_2011 else APRIL_2011
    bonuses = _bonus_events([r for r in all_bonuses if r.date >= bonus_start], floor_from=None)

    uplift_amount, uplift_date = flat_uplift_112(entitlement)
    uplift = TimelineEvent(uplift_date, EventType.UPLIFT, DESC_UPLIFT, amount=uplift_amount)

    grants = []
    if entitlement < APRIL_2011:
        grants.append(TimelineEvent(APRIL_2011, EventType.GRANT, DESC_APRIL_2011,
                                    amount=LAW_112_APRIL_2011_GRANT))

    specials = []
    if APRIL_2011 <= entitlement < JULY_2011:
        specials.append(TimelineEvent(JULY_2011, EventType.SPECIAL_UPLIFT_134, DESC_SUPPLEMENT_134))

    def qualifies(event, strictly_after):
        after = event.date > entitlement if strictly_after else event.date >= entitlement
        return after or (event.event_type in (EventType.BONUS, EventType.GRANT)
                         and is_bonus_exception(event.date, entitlement))

    if entitlement < UPLIFT_START:
        initial = FixedPensionSchedule.value_at(law, entitlement)
        steps = [_initial_step(entitlement, DESC_FIXED_PERIOD, initial)]
        fixed = [
            TimelineEvent(effective, EventType.FIXED_INCREASE,
                          f"قيمة المعاش الثابت في {format_for_display(effective.strftime('%Y/%m/%d'))}",
                          amount=value)
            for effective, value in FixedPensionSchedule.get_table(law) if effective > entitlement
        ]
        pending = [e for e in fixed + grants + [uplift] + bonuses + specials if qualifies(e, False)]
        leading: List[TimelineEvent] = []
    else:
        initial = LAW_112_BASE_PENSION
        steps = [_initial_step(entitlement, DESC_BASIC_AT_ENTITLEMENT, initial)]
        leading = [uplift]
        if entitlement >= FLOOR_ENFORCEMENT_START:
            leading.append(TimelineEvent(entitlement, EventType.MINIMUM_UPLIFT, DESC_FLOOR_AT_ENTITLEMENT_112))
        pending = [e for e in grants + bonuses + specials if qualifies(e, True)]

    seen = set()
    events = []
    for event in _sorted_events(pending):
        if (event.date, event.description) in seen:
            continue
        seen.add((event.date, event.description))
        events.append(event)

    def apply_event(state, event):
        before = state.total
        produced: List[ProgressionStep] = []
        # Exception bonuses dated before entitlement take effect at entitlement.
        on = max(event.date, entitlement)

        if (event.event_type == EventType.BONUS and event.date == JANUARY_2012
                and entitlement < APRIL_2011):
            produced.append(ProgressionStep(
                date=on, description=DESC_FIXED_ADDITION, pension_before=before,
                bonus_amount=LAW_112_JANUARY_2012_ADDITION, min_uplift=0.0,
                pension_after=before + LAW_112_JANUARY_2012_ADDITION,
                bonus_percentage='-', event_type=EventType.ADDITION,
            ))
            state = state.add(LAW_112_JANUARY_2012_ADDITION)
            before = state.total

        if event.event_type == EventType.FIXED_INCREASE:
            if event.amount <= before:
                return state, produced
            produced.append(ProgressionStep(
                date=on, description=event.description, pension_before=before,
                bonus_amount=0.0, min_uplift=0.0, pension_after=event.amount,
                bonus_percentage='-', event_type=event.event_type,
            ))
            return PensionState(event.amount), produced

        if event.event_type == EventType.SPECIAL_UPLIFT_134:
            if before >= LAW_112_SUPPLEMENT_TARGET:
                return state, produced
            produced.append(ProgressionStep(
                date=on, description=event.description, pension_before=before,
                bonus_amount=LAW_112_SUPPLEMENT_TARGET - before, min_uplift=0.0,
                pension_after=LAW_112_SUPPLEMENT_TARGET, bonus_percentage='-',
                event_type=event.event_type,
            ))
            return PensionState(LAW_112_SUPPLEMENT_TARGET), produced

        if event.event_type in (EventType.UPLIFT, EventType.GRANT):
            amount = event.amount
            top_up = 0.0
        elif event.event_type == EventType.MINIMUM_UPLIFT:
            amount = 0.0
            top_up = _floor_top_up(before, event.date, minimum_rows)
        else:
            bonus = event.bonus
            amount = min(max(before * bonus.percentage / 100.0, bonus.minimum),
                         bonus.maximum if bonus.maximum else float('inf'))
            top_up = _floor_top_up(before + amount, event.date, minimum_rows)

        if amount + top_up == 0:
            return state, produced
        step = _additive_step(event, before, amount, top_up, on=on)
        if step.bonus_percentage is None:
            step = replace(step, bonus_percentage='-')
        produced.append(step)
        return state.add(amount + top_up), produced

    steps += replay_events(PensionState(initial), leading + events, apply_event)
    summary = ProgressionSummary(basic_pension_at_entitlement=initial)
    return ProgressionData(_summarize(summary, steps, entitlement), steps)


# =============================================================================
# LAW 148 / 2019
# =============================================================================

def calculate_law148(form: InsuranceDuesForm, tables: TableSet) -> ProgressionData:
    """Law 148/2019 timeline; always uses the current bonus table."""
    bonus_rows = tables.bonus_rows(tables.current_bonus_table_name)
    minimum_rows = tables.minimum_rows()
    entitlement = form.entitlement_date
    if bonus_rows is None or minimum_rows is None or entitlement is None:
        logger.debug("Law 148 progression unavailable")
        return ProgressionData.empty()

    normal = form.normal_basic_pension
    injury = form.injury_basic_pension
    summary = ProgressionSummary(
        basic_pension_at_entitlement=normal,
        initial_normal_basic_pension=normal,
        initial_injury_pension=injury,
    )

    events = _entitlement_events(entitlement, LAW_148_UPLIFT_CONSTANT,
                                 DESC_FLOOR_AT_ENTITLEMENT, with_floor=True)
    if injury > 0:
        events.append(TimelineEvent(entitlement, EventType.ADDITION, DESC_INJURY, amount=injury))
    events += _bonus_events([r for r in bonus_rows if r.date > entitlement], floor_from=None)

    def apply_event(state, event):
        return _apply_formula_event(state, event, minimum_rows)

    steps = [_initial_step(entitlement, DESC_NORMAL_BASIC, normal)]
    steps += replay_events(PensionState(normal), events, apply_event)
    return ProgressionData(_summarize(summary, steps, entitlement), steps)


# =============================================================================
# DISPATCH
# =============================================================================

def compute_progression(law: LawType, form: InsuranceDuesForm, tables: TableSet,
                        bonus_table_name: Optional[str] = None) -> ProgressionData:
    """
    Single entry point for every law.

    ``bonus_table_name`` only matters for Laws 79/108; it defaults to the
    current bonus table.
    """
    table_name = bonus_table_name or tables.current_bonus_table_name
    if law == LawType.LAW_79:
        return calculate_law79(form, tables, table_name)
    if law == LawType.LAW_108:
        return calculate_law108(form, tables, table_name)
    if law in (LawType.LAW_112, LawType.SADAT):
        return calculate_law112(form.entitlement_date, law, tables)
    if law == LawType.LAW_148:
        return calculate_law148(form, tables)
    raise ValueError(f"Unknown law type: {law}")


def uses_dated_tables(law: LawType) -> bool:
    """Laws 79/108 read bonuses from the table assigned to the queried date."""
    return law in (LawType.LAW_79, LawType.LAW_108)


class ProgressionEngine:
    """
    Memoizing front end to ``compute_progression``.

    Cached timelines are keyed by every input that shapes them (law,
    entitlement, pension components, bonus table, table fingerprint), so a
    changed form or table set never reuses a stale result.
    """

    def __init__(self, tables: TableSet, reference_cutoff: date = REFERENCE_CUTOFF):
        self.tables = tables
        self.reference_cutoff = reference_cutoff
        self._cache: Dict[tuple, ProgressionData] = {}

    def _key(self, form: InsuranceDuesForm, table_name: str) -> tuple:
        return (
            form.law_type, form.pension_entitlement_date, form.normal_basic_pension,
            form.injury_basic_pension, form.variable_pension, form.special_bonuses,
            table_name, self.tables.fingerprint,
        )

    def progression(self, form: InsuranceDuesForm,
                    bonus_table_name: Optional[str] = None) -> ProgressionData:
        table_name = bonus_table_name or self.tables.current_bonus_table_name
        key = self._key(form, table_name)
        if key not in self._cache:
            data = compute_progression(form.law_type, form, self.tables, table_name)
            logger.debug(f"Computed {form.law_type.value} progression on '{table_name}': "
                         f"{len(data.steps)} steps")
            self._cache[key] = data
        return self._cache[key]

    def progression_for_date(self, form: InsuranceDuesForm, target: date) -> ProgressionData:
        """Timeline as it stood under the bonus table assigned to ``target``."""
        if uses_dated_tables(form.law_type):
            return self.progression(form, resolve_bonus_table_name(target, self.tables))
        return self.progression(form)

    def main_progression(self, form: InsuranceDuesForm, as_of: date) -> ProgressionData:
        """The timeline shown to the user for the as-of date."""
        return self.progression_for_date(form, as_of)

    def reference_progressions(self, form: InsuranceDuesForm) -> List[ReferenceProgression]:
        """Timelines against every "جدول رقم (N)" table, for pre-May-2008 Law 79/108 cases."""
        entitlement = form.entitlement_date
        if not uses_dated_tables(form.law_type) or entitlement is None:
            return []
        if entitlement >= self.reference_cutoff:
            return []

        others = []
        for table in self.tables.reference_tables():
            data = self.progression(form, table.name)
            if not data.is_empty:
                others.append(ReferenceProgression(table.name, table.ref_number, data, list(table.notes)))
        return others

    def all_progressions(self, form: InsuranceDuesForm, as_of: date) -> Optional[AllProgressions]:
        """
        Main timeline plus reference timelines, with per-step references.

        Returns None when the main timeline cannot be computed.
        """
        main = self.main_progression(form, as_of)
        if main.is_empty:
            return None

        others = self.reference_progressions(form)
        if others:
            # Law 108 reports its entitlement pension as a change; Law 79 does not.
            initial_counts = form.law_type == LawType.LAW_108
            refs_by_date: Dict[date, set] = {}
            for other in others:
                for step in other.data.steps:
                    if step.event_type == EventType.INITIAL and not initial_counts:
                        continue
                    if step.bonus_amount > 0 or step.min_uplift > 0:
                        refs_by_date.setdefault(step.date, set()).add(other.ref_number)
            main = ProgressionData(
                main.summary,
                [s.with_references(sorted(refs_by_date.get(s.date, ()))) for s in main.steps],
            )
        return AllProgressions(main, others)
