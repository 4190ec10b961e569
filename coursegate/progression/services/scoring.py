"""
Scoring helpers shared by grading and progress percentages
"""
import math


def round_half_up(value):
    """Round .5 upwards, the way the client side rounds percentages"""
    return int(math.floor(value + 0.5))


def percentage(part, whole):
    if not whole:
        return 0
    return round_half_up(part / whole * 100)


def normalize_answers(answers):
    """
    Accept ``{question_id: option}`` or ``[{question_id, selected_option}]``
    and return a dict keyed by question id string
    """
    if not answers:
        return {}
    if isinstance(answers, dict):
        return {str(key): value for key, value in answers.items()}

    normalized = {}
    for entry in answers:
        question_id = entry.get('question_id') or entry.get('questionId')
        if question_id is None:
            continue
        normalized[str(question_id)] = entry.get('selected_option', entry.get('selectedOption'))
    return normalized


def grade_questions(questions, answers):
    """
    Score a question snapshot against submitted answers.
    Unanswered questions score zero.

    Returns (score, max_score, graded) where graded has one row per question.
    """
    answers = normalize_answers(answers)
    score = 0
    max_score = 0
    graded = []

    for question in questions:
        points = question.get('points', 1)
        points = 1 if points is None else int(points)
        max_score += points
        selected = answers.get(str(question['question_id']))
        is_correct = selected is not None and str(selected) == str(question.get('correct_option'))
        if is_correct:
            score += points
        graded.append({
            'question_id': str(question['question_id']),
            'selected_option': selected,
            'is_correct': is_correct,
            'points_awarded': points if is_correct else 0,
        })

    return score, max_score, graded
