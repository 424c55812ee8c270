"""
Text Normalizer

Name-matching helpers for Japanese sales data:
- Half-width katakana to full-width (with voicing-mark composition)
- Client name normalization (corporate suffixes and whitespace removed)
- Family name extraction from a representative's full name

All functions are pure and never raise.
"""

import re
from typing import Optional


HALF_TO_FULL_KANA = {
    'ｱ': 'ア', 'ｲ': 'イ', 'ｳ': 'ウ', 'ｴ': 'エ', 'ｵ': 'オ',
    'ｶ': 'カ', 'ｷ': 'キ', 'ｸ': 'ク', 'ｹ': 'ケ', 'ｺ': 'コ',
    'ｻ': 'サ', 'ｼ': 'シ', 'ｽ': 'ス', 'ｾ': 'セ', 'ｿ': 'ソ',
    'ﾀ': 'タ', 'ﾁ': 'チ', 'ﾂ': 'ツ', 'ﾃ': 'テ', 'ﾄ': 'ト',
    'ﾅ': 'ナ', 'ﾆ': 'ニ', 'ﾇ': 'ヌ', 'ﾈ': 'ネ', 'ﾉ': 'ノ',
    'ﾊ': 'ハ', 'ﾋ': 'ヒ', 'ﾌ': 'フ', 'ﾍ': 'ヘ', 'ﾎ': 'ホ',
    'ﾏ': 'マ', 'ﾐ': 'ミ', 'ﾑ': 'ム', 'ﾒ': 'メ', 'ﾓ': 'モ',
    'ﾔ': 'ヤ', 'ﾕ': 'ユ', 'ﾖ': 'ヨ',
    'ﾗ': 'ラ', 'ﾘ': 'リ', 'ﾙ': 'ル', 'ﾚ': 'レ', 'ﾛ': 'ロ',
    'ﾜ': 'ワ', 'ｦ': 'ヲ', 'ﾝ': 'ン',
    'ｧ': 'ァ', 'ｨ': 'ィ', 'ｩ': 'ゥ', 'ｪ': 'ェ', 'ｫ': 'ォ',
    'ｬ': 'ャ', 'ｭ': 'ュ', 'ｮ': 'ョ',
    'ｯ': 'ッ', 'ｰ': 'ー',
    'ﾞ': '゛', 'ﾟ': '゜',
}

HALF_DAKUTEN = 'ﾞ'
HALF_HANDAKUTEN = 'ﾟ'

DAKUTEN_MAP = {
    'カ': 'ガ', 'キ': 'ギ', 'ク': 'グ', 'ケ': 'ゲ', 'コ': 'ゴ',
    'サ': 'ザ', 'シ': 'ジ', 'ス': 'ズ', 'セ': 'ゼ', 'ソ': 'ゾ',
    'タ': 'ダ', 'チ': 'ヂ', 'ツ': 'ヅ', 'テ': 'デ', 'ト': 'ド',
    'ハ': 'バ', 'ヒ': 'ビ', 'フ': 'ブ', 'ヘ': 'ベ', 'ホ': 'ボ',
    'ウ': 'ヴ',
}

HANDAKUTEN_MAP = {
    'ハ': 'パ', 'ヒ': 'ピ', 'フ': 'プ', 'ヘ': 'ペ', 'ホ': 'ポ',
}

# Removed in declaration order, one pass. No token is a substring of another.
CORPORATE_SUFFIXES = (
    '株式会社', '㈱', '（株）', '(株)',
    '有限会社', '㈲', '（有）', '(有)',
    '合同会社', '合資会社', '合名会社',
    '一般社団法人', '一般財団法人',
    '公益社団法人', '公益財団法人',
)

# \s covers U+3000 for str patterns; listed for readability
_WHITESPACE_RUN = re.compile(r'[\s　]+')


def to_full_width_kana(text: Optional[str]) -> str:
    """
    Convert half-width katakana to full-width.

    A voicing mark directly after a convertible character is folded into it
    (ｶﾞ -> ガ, ﾊﾟ -> パ). Marks are only combined with the preceding character.
    """
    if not text:
        return ''

    result = []
    i = 0
    length = len(text)
    while i < length:
        char = HALF_TO_FULL_KANA.get(text[i], text[i])

        if i + 1 < length:
            next_char = text[i + 1]
            if next_char == HALF_DAKUTEN and char in DAKUTEN_MAP:
                char = DAKUTEN_MAP[char]
                i += 1
            elif next_char == HALF_HANDAKUTEN and char in HANDAKUTEN_MAP:
                char = HANDAKUTEN_MAP[char]
                i += 1

        result.append(char)
        i += 1

    return ''.join(result)


def normalize_client_name(name: Optional[str]) -> str:
    """Client name used as the "same client" key: kana unified, suffixes and spaces removed."""
    if not name:
        return ''

    normalized = to_full_width_kana(name)
    for suffix in CORPORATE_SUFFIXES:
        normalized = normalized.replace(suffix, '')

    return _WHITESPACE_RUN.sub('', normalized).strip()


def extract_family_name(full_name: Optional[str]) -> str:
    """First whitespace-delimited token of a full name ("山田 太郎" -> "山田")."""
    if not full_name:
        return ''

    for part in _WHITESPACE_RUN.split(full_name):
        if part:
            return part
    return full_name
