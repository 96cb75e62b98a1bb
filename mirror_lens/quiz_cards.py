"""Relationship quiz deck: five fixed cards, a conditional sixth card, and answer storage."""
import logging
from typing import Any

from mirror_lens.aggregation import QUIZ_RESPONSES
from mirror_lens.models import QuizCard, QuizResponse, SliderLabels
from mirror_lens.store.base import RecordStore, StoreError

_log = logging.getLogger(__name__)

COMPLETED_CARD_COUNT = 5

_BASE_CARDS: list[dict[str, Any]] = [
    {
        "cardType": "reflexes",
        "question": "When you're communicating with this person, what's your default reflex?",
        "options": [
            "Get straight to the point",
            "Cushion with warmth first",
            "Check in emotionally",
            "Lead with humor",
            "Mirror their energy",
            "Ask clarifying questions",
        ],
    },
    {
        "cardType": "frustrations",
        "question": "What tends to frustrate you most in this relationship?",
        "options": [
            "Not feeling heard",
            "Misunderstandings",
            "Different communication pace",
            "Unmet expectations",
            "Lack of vulnerability",
            "Feeling judged",
            "Not enough depth",
            "Too much intensity",
        ],
    },
    {
        "cardType": "fears",
        "question": "What do you worry about most with this person?",
        "options": [
            "Being misunderstood",
            "Overwhelming them",
            "Being too vulnerable",
            "Causing conflict",
            "Losing connection",
            "Being judged",
            "Saying the wrong thing",
            "Not being enough",
        ],
    },
    {
        "cardType": "hopes",
        "question": "What do you hope for in this relationship?",
        "options": [
            "Deeper understanding",
            "More ease in communication",
            "Greater trust",
            "More authenticity",
            "Better conflict resolution",
            "Shared growth",
            "More fun together",
            "Emotional safety",
        ],
    },
    {
        "cardType": "derails",
        "question": "What usually derails conversations with this person?",
        "options": [
            "Defensiveness",
            "Mismatched energy",
            "Assumptions",
            "Interruptions",
            "Different priorities",
            "Emotional overwhelm",
            "Lack of context",
            "Timing issues",
        ],
    },
]

CONFLICT_FRUSTRATIONS = {"Unmet expectations", "Feeling judged"}
CONFLICT_FEARS = {"Causing conflict"}
VULNERABILITY_FRUSTRATIONS = {"Lack of vulnerability", "Not enough depth"}
VULNERABILITY_FEARS = {"Being too vulnerable"}


def adapt_question_wording(question: str, processing_type: str = "balanced") -> str:
    """Intuitive processors get the more abstract "how" phrasing; everyone else the original."""
    if processing_type == "intuitive":
        return question.replace("what", "how", 1)
    return question


def quiz_cards(processing_type: str = "balanced") -> list[QuizCard]:
    return [
        QuizCard(
            cardNumber=number,
            cardType=card["cardType"],
            question=adapt_question_wording(card["question"], processing_type),
            inputType="multi_select",
            options=list(card["options"]),
        )
        for number, card in enumerate(_BASE_CARDS, start=1)
    ]


def _answers(responses: list[QuizResponse], card_type: str) -> set[str]:
    for response in responses:
        if response.cardType == card_type:
            answer = response.answer
            if isinstance(answer, str):
                return {answer}
            if isinstance(answer, list):
                return {a for a in answer if isinstance(a, str)}
    return set()


def conditional_card(responses: list[QuizResponse], processing_type: str = "balanced") -> QuizCard:
    """Pick the sixth card from the frustrations and fears already answered."""
    frustrations = _answers(responses, "frustrations")
    fears = _answers(responses, "fears")

    if frustrations & CONFLICT_FRUSTRATIONS or fears & CONFLICT_FEARS:
        return QuizCard(
            cardNumber=6,
            cardType="conditional",
            question=adapt_question_wording(
                "When conflict arises with this person, how do you typically respond?", processing_type
            ),
            inputType="single_select",
            options=[
                "Address it immediately",
                "Need time to process first",
                "Try to smooth things over",
                "Withdraw and reflect",
                "Seek to understand their side",
                "Defend my position",
            ],
        )

    if frustrations & VULNERABILITY_FRUSTRATIONS or fears & VULNERABILITY_FEARS:
        return QuizCard(
            cardNumber=6,
            cardType="conditional",
            question=adapt_question_wording(
                "How comfortable are you being vulnerable with this person?", processing_type
            ),
            inputType="slider",
            sliderLabels=SliderLabels(min="Very guarded", max="Completely open"),
        )

    return QuizCard(
        cardNumber=6,
        cardType="conditional",
        question=adapt_question_wording("What communication pace feels best with this person?", processing_type),
        inputType="single_select",
        options=[
            "Quick, frequent check-ins",
            "Longer, deeper conversations",
            "Sporadic but meaningful",
            "Consistent and predictable",
            "Flexible and spontaneous",
        ],
    )


async def store_quiz_response(store: RecordStore, user_id: str, contact_id: str, response: QuizResponse) -> None:
    """Persist one answered card. StoreError propagates to the caller."""
    await store.insert(QUIZ_RESPONSES, {
        "user_id": user_id,
        "contact_id": contact_id,
        "card_number": response.cardNumber,
        "card_type": response.cardType,
        "question": response.question,
        "input_type": response.inputType,
        "answer": response.answer,
    })


async def get_quiz_responses(store: RecordStore, user_id: str, contact_id: str) -> list[QuizResponse]:
    try:
        rows = await store.find(
            QUIZ_RESPONSES,
            {"user_id": user_id, "contact_id": contact_id},
            order_by="card_number",
            descending=False,
        )
    except StoreError as exc:
        _log.warning("could not load quiz responses for %s/%s: %s", user_id, contact_id, exc)
        return []
    return [
        QuizResponse(
            cardNumber=row["card_number"],
            cardType=row["card_type"],
            question=row["question"],
            inputType=row["input_type"],
            answer=row.get("answer"),
        )
        for row in rows
    ]


async def has_completed_quiz(store: RecordStore, user_id: str, contact_id: str) -> bool:
    try:
        stored = await store.count(QUIZ_RESPONSES, {"user_id": user_id, "contact_id": contact_id})
    except StoreError as exc:
        _log.warning("could not count quiz responses for %s/%s: %s", user_id, contact_id, exc)
        return False
    return stored >= COMPLETED_CARD_COUNT
