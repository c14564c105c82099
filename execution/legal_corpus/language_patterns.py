"""
Arabic Pattern Definitions for Legal Corpus Retrieval

All regex patterns, ordinal-number tables, and prompt strings used to read
Arabic legal queries and gazette pages. Modules import from here instead of
defining patterns inline.
"""

import re

# =============================================================================
# Digits
# =============================================================================

# Arabic-Indic (U+0660..U+0669) and Extended Arabic-Indic (U+06F0..U+06F9)
ARABIC_DIGIT_TRANSLATION = str.maketrans(
    "\u0660\u0661\u0662\u0663\u0664\u0665\u0666\u0667\u0668\u0669"
    "\u06f0\u06f1\u06f2\u06f3\u06f4\u06f5\u06f6\u06f7\u06f8\u06f9",
    "01234567890123456789",
)

# Alef variants folded to bare alef when comparing ordinal labels
ALEF_VARIANTS = re.compile(r"[أإآ]")

# Bidi control marks that leak into copied queries
BIDI_MARKS = re.compile(r"[\u200e\u200f\u202a-\u202e]")

# =============================================================================
# Article References
# =============================================================================

ARTICLE_WORD = "المادة"

# "المادة 107", "مادة 5", "ماده (12)", "لمادة رقم 5"
ARTICLE_NUMBER_PATTERN = re.compile(
    r"(?:المادة|مادة|ماده)\s*(?:رقم\s*)?[(\[]?\s*(\d{1,4})(?!\d)"
)

# Phrasings that ask for the literal wording of an article
ARTICLE_TEXT_QUERY_PATTERNS = [
    re.compile(r"نص\s*(?:المادة|مادة|ماده)"),
    re.compile(r"تنص\s*(?:المادة|مادة|ماده)"),
    ARTICLE_NUMBER_PATTERN,
]

# Heading of the next article inside fetched gazette text
NEXT_ARTICLE_MARKER = re.compile(r"\n\s*المادة\s+\S")

# =============================================================================
# Law Mentions
# =============================================================================

LABOR_LAW_PATTERN = re.compile(r"نظام\s*العمل")
LABOR_OFFICE_PATTERN = re.compile(r"مكتب\s*العمل")
LABOR_LAW_TERM = "نظام العمل"

# =============================================================================
# Gazette-Style Ordinal Labels (feminine ordinals, agreeing with "المادة")
# =============================================================================

ORDINAL_UNITS = {
    1: "الأولى",
    2: "الثانية",
    3: "الثالثة",
    4: "الرابعة",
    5: "الخامسة",
    6: "السادسة",
    7: "السابعة",
    8: "الثامنة",
    9: "التاسعة",
}

ORDINAL_TEN = "العاشرة"

ORDINAL_TEENS = {
    1: "الحادية عشرة",
    2: "الثانية عشرة",
    3: "الثالثة عشرة",
    4: "الرابعة عشرة",
    5: "الخامسة عشرة",
    6: "السادسة عشرة",
    7: "السابعة عشرة",
    8: "الثامنة عشرة",
    9: "التاسعة عشرة",
}

ORDINAL_TENS = {
    20: "العشرون",
    30: "الثلاثون",
    40: "الأربعون",
    50: "الخمسون",
    60: "الستون",
    70: "السبعون",
    80: "الثمانون",
    90: "التسعون",
}

# Unit prefix in unit+tens compounds ("الحادية والعشرون", not "الأولى والعشرون")
ORDINAL_COMPOUND_UNITS = {**ORDINAL_UNITS, 1: "الحادية"}

HUNDRED_LABEL = "المائة"
TWO_HUNDRED_LABEL = "المائتين"
AFTER_HUNDRED = "بعد المائة"
AFTER_TWO_HUNDRED = "بعد المائتين"

# Negative lookahead after an ordinal label: a longer ordinal continues here
LABEL_CONTINUATION_GUARD = r"(?![^\S\n]*(?:عشرة|و\S|بعد))"

# =============================================================================
# Keyword Tokenization
# =============================================================================

KEYWORD_MIN_TOKEN_LENGTH = 3
KEYWORD_MAX_TOKENS = 8

# =============================================================================
# Prompt Formatting (grounding block handed to the chat model)
# =============================================================================

PROMPT_LABELS = {
    "empty": "لا توجد مقتطفات متاحة حالياً من قاعدة المعرفة الرسمية.",
    "header": (
        "مقتطفات من مصادر رسمية (قاعدة صارمة: عند ذكر مادة/نص/تاريخ/تعريف نظامي "
        "يجب أن يكون موجوداً حرفياً داخل مقتطف واحد على الأقل. عند الاستشهاد استخدم "
        "رقم المقتطف بين أقواس مربعة مثل [1] ثم ضع الروابط في قسم (المصادر).):"
    ),
    "source": "المصدر",
    "link": "الرابط",
    "excerpt": "المقتطف",
}
