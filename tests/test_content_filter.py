from engine.content_filter import ContentFilter


def test_clean_text_passes_unchanged():
    verdict = ContentFilter().classify("hello there, how are you?")
    assert not verdict.has_violation
    assert verdict.masked == "hello there, how are you?"
    assert verdict.violation_count == 0


def test_bad_words_are_masked_case_insensitively():
    verdict = ContentFilter().classify("You are a SCAM artist, total Scam")
    assert verdict.has_violation
    assert verdict.violation_count == 2
    assert verdict.masked == "You are a **** artist, total ****"


def test_matching_is_substring_based():
    # "sextant" contains "sex": substring match, same as the word list is applied everywhere
    assert ContentFilter().classify("sextant").masked == "***tant"


def test_longer_word_is_masked_whole():
    assert ContentFilter().classify("asshole").masked == "*******"


def test_empty_and_none_are_clean():
    f = ContentFilter()
    assert not f.classify(None).has_violation
    assert f.classify("").masked == ""
    assert f.count_links(None) == 0


def test_custom_word_list_replaces_defaults():
    f = ContentFilter(["banana"])
    assert f.contains_bad_words("BANANA split")
    assert not f.contains_bad_words("spam")


def test_links_are_counted():
    f = ContentFilter()
    assert f.count_links("see https://example.com and @someone and t.me/channel") == 3
    assert f.count_links("go to www.example.org now") == 1
    assert not f.contains_links("no links here")


def test_nickname_rules():
    f = ContentFilter()
    assert f.is_valid_nickname("ok")
    assert f.is_valid_nickname("night_owl")
    assert not f.is_valid_nickname("a")
    assert not f.is_valid_nickname("x" * 21)
    assert not f.is_valid_nickname("SuperAdmin")
    assert not f.is_valid_nickname("TelegramFan")
    assert not f.is_valid_nickname("Sussex")
    assert not f.is_valid_nickname(None)
