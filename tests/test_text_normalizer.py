from app.services.text_normalizer import (
    extract_family_name,
    normalize_client_name,
    to_full_width_kana,
)


def test_half_width_kana_converted_with_voicing_marks():
    assert to_full_width_kana("ｶﾞｽ") == "ガス"
    assert to_full_width_kana("ﾊﾟﾝ") == "パン"
    assert to_full_width_kana("ﾃｽﾄ") == "テスト"


def test_full_width_conversion_is_idempotent():
    for text in ["ｶﾞｽ", "ﾊﾟｰﾂｾﾝﾀｰ", "ﾃｽﾄ商事", "ABC ｱｲｳ", "ﾞ"]:
        once = to_full_width_kana(text)
        assert to_full_width_kana(once) == once


def test_voicing_mark_without_composable_base_is_kept():
    assert to_full_width_kana("ｱﾞ") == "ア゛"


def test_empty_and_none_inputs():
    assert to_full_width_kana(None) == ""
    assert normalize_client_name(None) == ""
    assert normalize_client_name("") == ""
    assert extract_family_name(None) == ""


def test_corporate_suffix_variants_normalize_to_same_key():
    assert normalize_client_name("株式会社 テスト") == "テスト"
    assert normalize_client_name("(株)テスト") == "テスト"
    assert normalize_client_name("（株）テスト") == "テスト"
    assert normalize_client_name("㈱テスト") == "テスト"
    assert normalize_client_name("ﾃｽﾄ") == "テスト"
    assert normalize_client_name("テスト 有限会社") == "テスト"


def test_normalize_removes_all_whitespace():
    assert normalize_client_name(" テスト　商事 ") == "テスト商事"


def test_extract_family_name():
    assert extract_family_name("山田 太郎") == "山田"
    assert extract_family_name("山田　太郎") == "山田"
    assert extract_family_name("山田太郎") == "山田太郎"
    assert extract_family_name("  山田 太郎") == "山田"
