"""Exam format constants: real-test composition, banding tables, pacing. No UI."""
# Real test: 39 questions drawn per weight bucket, ascending weight order.
# Percentage = correct / EXAM_TOTAL (unanswered questions count against it).

REAL_TEST_COUNTS = {
    3: 4,
    9: 6,
    15: 9,
    21: 10,
    26: 6,
    33: 4,
}
EXAM_TOTAL = 39

PREPARE_SECONDS = 3.0
SCORING_SECONDS = 0.7

EVENT_LOG_LIMIT = 20000

# CLB bands over weighted score. Contiguous, ascending; below the first min = "not reached".
LISTENING_CLB_RANGES = (
    {"clb": 4, "min": 331, "max": 368, "band": "A1"},
    {"clb": 5, "min": 369, "max": 397, "band": "A2"},
    {"clb": 6, "min": 398, "max": 457, "band": "B1"},
    {"clb": 7, "min": 458, "max": 502, "band": "B2"},
    {"clb": 8, "min": 503, "max": 522, "band": "B2"},
    {"clb": 9, "min": 523, "max": 548, "band": "C1"},
    {"clb": 10, "min": 549, "max": 699, "band": "C2"},
)

READING_CLB_RANGES = (
    {"clb": 4, "min": 342, "max": 374, "band": "A1"},
    {"clb": 5, "min": 375, "max": 405, "band": "A2"},
    {"clb": 6, "min": 406, "max": 452, "band": "B1"},
    {"clb": 7, "min": 453, "max": 498, "band": "B2"},
    {"clb": 8, "min": 499, "max": 523, "band": "B2"},
    {"clb": 9, "min": 524, "max": 548, "band": "C1"},
    {"clb": 10, "min": 549, "max": 699, "band": "C2"},
)
