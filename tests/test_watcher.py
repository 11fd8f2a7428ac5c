import time
from unittest.mock import Mock

from decktypes.classifiers.classifier import DeckClassifier
from decktypes.core.watcher import RuleFileReloader, RuleFileWatcher
from decktypes.rules.context import AttributeRecord
from decktypes.rules.errors import CompileError


def test_rule_file_watcher_triggers_callback(tmp_path):
    """RuleFileWatcher should invoke callback when the rule file is written."""
    rules_file = tmp_path / "decktypes.txt"
    callback = Mock()
    watcher = RuleFileWatcher(str(rules_file), callback)

    try:
        watcher.start()
        (tmp_path / "unrelated.txt").write_text("ignored")
        rules_file.write_text("A|true")

        # Give the watcher a moment to process the event
        time.sleep(1)
    finally:
        watcher.stop()
        watcher.join()

    assert callback.call_count >= 1
    assert all(call.args[0] == str(rules_file) for call in callback.call_args_list)


def test_reloader_publishes_new_tree(tmp_path):
    rules_file = tmp_path / "decktypes.txt"
    rules_file.write_text("A|true", encoding="utf-8")
    classifier = DeckClassifier()
    on_reload = Mock()
    reloader = RuleFileReloader(classifier, str(rules_file), on_reload=on_reload)

    assert reloader.reload() is True
    assert classifier.classify(AttributeRecord()).name == "A"
    on_reload.assert_called_once_with(None)

    rules_file.write_text("B|true", encoding="utf-8")
    assert reloader.reload() is True
    assert classifier.classify(AttributeRecord()).name == "B"


def test_reloader_skips_unchanged_content(tmp_path):
    rules_file = tmp_path / "decktypes.txt"
    rules_file.write_text("A|true", encoding="utf-8")
    reloader = RuleFileReloader(DeckClassifier(), str(rules_file))

    assert reloader.reload() is True
    assert reloader.reload() is False


def test_reloader_keeps_previous_tree_on_error(tmp_path):
    rules_file = tmp_path / "decktypes.txt"
    rules_file.write_text("A|true", encoding="utf-8")
    classifier = DeckClassifier()
    on_reload = Mock()
    reloader = RuleFileReloader(classifier, str(rules_file), on_reload=on_reload)
    reloader.reload()

    rules_file.write_text("B|cards.Contains(", encoding="utf-8")
    assert reloader.reload() is False

    error = on_reload.call_args.args[0]
    assert isinstance(error, CompileError)
    assert classifier.classify(AttributeRecord()).name == "A"

    # 同样的错误内容不会重复报告
    assert reloader.reload() is False
    assert on_reload.call_count == 2


def test_reloader_missing_file(tmp_path):
    classifier = DeckClassifier()
    reloader = RuleFileReloader(classifier, str(tmp_path / "missing.txt"))

    assert reloader.reload() is False
    assert not classifier.is_initialized
