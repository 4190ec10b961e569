"""
Unlock Sequencer
Pure decision logic over an effective order and a progress snapshot.
No database access happens here.
"""


class ProgressSnapshot:
    """
    Completion facts needed to make unlock decisions.

    completed          ids of completed videos and documents
    passed_quiz_units  unit ids whose quiz has been passed
    review_units       unit ids currently in needs-review
    """

    def __init__(self, completed=None, passed_quiz_units=None, review_units=None):
        self.completed = {str(item_id) for item_id in (completed or ())}
        self.passed_quiz_units = {str(unit_id) for unit_id in (passed_quiz_units or ())}
        self.review_units = {str(unit_id) for unit_id in (review_units or ())}

    def is_completed(self, item_id):
        return str(item_id) in self.completed


def unit_content_complete(unit, snapshot):
    return all(item.item_id in snapshot.completed for item in unit.items)


def unit_complete(unit, snapshot):
    """Content done, quiz passed when there is one, and no pending review"""
    if unit.unit_id in snapshot.review_units:
        return False
    if not unit_content_complete(unit, snapshot):
        return False
    if unit.has_quiz:
        return unit.unit_id in snapshot.passed_quiz_units
    return True


def open_units(order, snapshot):
    """
    Units the student may work in: the first unit, plus every unit whose
    predecessors are all complete.
    """
    opened = []
    for unit in order.units:
        opened.append(unit)
        if not unit_complete(unit, snapshot):
            break
    return opened


def entry_item(order, snapshot):
    """
    First item of the earliest open unit that has content. A leading unit
    holding only a quiz yields nothing until that quiz is passed.
    """
    for unit in open_units(order, snapshot):
        if unit.items:
            return unit.items[0].item_id
    return None


def _next_unit_entry(order, snapshot, unit_index):
    """First item of the unit after ``unit_index`` once everything up to it is complete"""
    for unit in order.units[:unit_index + 1]:
        if not unit_complete(unit, snapshot):
            return set()

    for unit in order.units[unit_index + 1:]:
        if unit.items:
            return {unit.items[0].item_id}
        # An empty unit with a quiz holds the cascade until that quiz is passed
        if not unit_complete(unit, snapshot):
            return set()
    return set()


def next_unlocks(order, snapshot, just_completed):
    """
    Items to unlock after ``just_completed`` (a content id, or ``quiz:<unit id>``
    for a passed unit quiz). The entry item of the earliest open unit is
    always included.
    """
    unlocks = set()
    first = entry_item(order, snapshot)
    if first is not None:
        unlocks.add(first)

    just_completed = str(just_completed)

    if just_completed.startswith('quiz:'):
        unit_index = order.unit_index(just_completed[len('quiz:'):])
        if unit_index is not None:
            unlocks |= _next_unit_entry(order, snapshot, unit_index)
        return unlocks

    located = order.locate(just_completed)
    if located is None:
        return unlocks

    unit_index, position = located
    unit = order.units[unit_index]
    if unit not in open_units(order, snapshot):
        return unlocks

    if position + 1 < len(unit.items):
        unlocks.add(unit.items[position + 1].item_id)
        return unlocks

    # Last item of the unit; a quiz becomes eligible instead of unlocking ahead
    unlocks |= _next_unit_entry(order, snapshot, unit_index)
    return unlocks


def derive_unlocked(order, snapshot):
    """
    Full unlocked set implied by recorded completions under the current order.
    Used to reconcile stale records and to retry deferred propagation.
    """
    unlocked = set()
    for unit in open_units(order, snapshot):
        previous_done = True
        for item in unit.items:
            done = item.item_id in snapshot.completed
            if previous_done or done:
                unlocked.add(item.item_id)
            previous_done = done

    first = entry_item(order, snapshot)
    if first is not None:
        unlocked.add(first)
    return unlocked


def pending_items(unit, snapshot):
    return [item.item_id for item in unit.items if item.item_id not in snapshot.completed]

