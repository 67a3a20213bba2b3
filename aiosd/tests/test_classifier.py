"""Unit Tests for request classification

Task-type scoring is plain substring counting, so several tests pin down
substring (not whole-word) behaviour explicitly.
"""

import pytest

from aiosd.core import classifier


class TestTaskTypeClassification:
    """classify_task_type: keyword counts, ordered tie-break, general default"""

    def test_network_request(self):
        """Multiple network keywords win"""
        assert classifier.classify_task_type("check network port connection") == classifier.NETWORK_OPS

    def test_file_request(self):
        assert classifier.classify_task_type("list files in current directory") == classifier.FILE_OPS

    def test_no_keywords_is_general(self):
        assert classifier.classify_task_type("hello there") == classifier.GENERAL

    def test_empty_text_is_general(self):
        assert classifier.classify_task_type("") == classifier.GENERAL
        assert classifier.classify_task_type(None) == classifier.GENERAL

    def test_tie_favors_declaration_order(self):
        """'file' (file_ops) and 'kill' (process_ops) score 1 each; file_ops is declared first"""
        scores = classifier.score_task_types("kill the file")
        assert scores[classifier.FILE_OPS] == scores[classifier.PROCESS_OPS] == 1
        assert classifier.classify_task_type("kill the file") == classifier.FILE_OPS

    def test_substring_not_word_boundary(self):
        """'ls' matches inside 'tools'"""
        assert classifier.score_task_types("tools")[classifier.FILE_OPS] == 1
        assert classifier.classify_task_type("tools") == classifier.FILE_OPS

    def test_case_insensitive(self):
        assert classifier.classify_task_type("PING THE SERVER") == classifier.NETWORK_OPS

    def test_every_task_type_has_keywords(self):
        for task_type in classifier.TASK_TYPES:
            if task_type == classifier.GENERAL:
                continue
            assert classifier.TASK_KEYWORDS[task_type]


class TestInputClassification:
    """classify_input: command vs chat"""

    @pytest.mark.parametrize("text", [
        "git add all files and push",
        "install numpy",
        "show disk usage",
    ])
    def test_commands(self, text):
        assert classifier.classify_input(text) == classifier.COMMAND

    def test_chat(self):
        assert classifier.classify_input("hello how are you today") == classifier.CHAT

    def test_empty_is_chat(self):
        assert classifier.classify_input("") == classifier.CHAT
