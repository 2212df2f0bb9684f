"""Language detection, stalling phrase pools and exit-intent matching."""

import pytest

from honeypot.language import (
    ENGLISH,
    HINGLISH,
    STALL_PHRASES,
    detect_language,
    is_exit_intent,
    pick_stall_phrase,
    stall_phrase_pool,
)


class TestDetectLanguage:
    def test_plain_english(self):
        assert detect_language("Your account is blocked. Share the OTP now.") == ENGLISH

    def test_devanagari_script(self):
        assert detect_language("आपका खाता बंद हो जाएगा") == HINGLISH

    @pytest.mark.parametrize("text", [
        "Bhaiya OTP bhejo jaldi",
        "Theek hai, account number do",
        "Acha beta, ruko",
    ])
    def test_hinglish_markers(self, text):
        assert detect_language(text) == HINGLISH

    def test_marker_inside_word_ignored(self):
        # "hai" inside "chair", "ji" inside "jingle"
        assert detect_language("Sit on the chair and play a jingle") == ENGLISH

    def test_empty(self):
        assert detect_language("") == ENGLISH


class TestStallPhrases:
    def test_pool_per_language(self):
        assert stall_phrase_pool(HINGLISH) == STALL_PHRASES[HINGLISH]
        assert stall_phrase_pool("xx") == STALL_PHRASES[ENGLISH]

    def test_first_unused_phrase(self):
        pool = stall_phrase_pool(ENGLISH)
        assert pick_stall_phrase(ENGLISH, []) == pool[0]
        assert pick_stall_phrase(ENGLISH, [pool[0]]) == pool[1]

    def test_exhausted_pool_reuses_first(self):
        pool = stall_phrase_pool(HINGLISH)
        assert pick_stall_phrase(HINGLISH, pool) == pool[0]

    def test_stall_phrases_never_signal_exit(self):
        for pool in STALL_PHRASES.values():
            for phrase in pool:
                assert not is_exit_intent(phrase), phrase


class TestExitIntent:
    @pytest.mark.parametrize("text", [
        "I am calling the police",
        "Goodbye",
        "ok bye",
        "Stop wasting my time",
        "Stop calling me",
        "I will visit the nearest police station to clear this up in person.",
        "Don't call me again",
        "cyber cell will handle this",
    ])
    def test_exit_phrases(self, text):
        assert is_exit_intent(text)

    @pytest.mark.parametrize("text", [
        "Send OTP now",
        "Your account will be blocked",
        "Please verify your KYC",
        "Which payment app do you use?",
        "A complaint is registered against your Aadhaar",
        "Stop! Do not disconnect, this is a verification call",
        "Your payment is stopped until KYC is done",
    ])
    def test_normal_phrases(self, text):
        assert not is_exit_intent(text)

    def test_combined_texts(self):
        assert is_exit_intent("Send OTP now", "Okay, I will go to the police")
        assert not is_exit_intent("Send OTP now", "")
