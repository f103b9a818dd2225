from __future__ import annotations

import pytest
from helpers import analyze_text, rule_ids_of

import codeassay.engine.tree_sitter as ts


@pytest.fixture(autouse=True)
def _line_scan_only(monkeypatch) -> None:
    # Keep these independent of which grammars are installed; line rules run either way.
    def unavailable(_grammar: str, _source: bytes) -> object:
        raise ts.TreeSitterError("grammar not installed")

    monkeypatch.setattr(ts, "parse", unavailable)


def _issues(path: str, text: str, rule_id: str):
    return [issue for issue in analyze_text(path, text).issues if issue.rule_id == rule_id]


@pytest.mark.parametrize(
    ("path", "line", "store", "secure"),
    [
        (
            "lib/auth.dart",
            "SharedPreferences.getInstance().then((p) => p.setString('auth_token', value));",
            "SharedPreferences",
            "flutter_secure_storage",
        ),
        (
            "app/Session.js",
            "await AsyncStorage.setItem('password', password);",
            "AsyncStorage",
            "react-native-keychain",
        ),
        ("ios/Session.swift", 'UserDefaults.standard.set(token, forKey: "authToken")', "UserDefaults", "Keychain"),
        (
            "app/Session.kt",
            'getSharedPreferences("auth", MODE_PRIVATE).edit().putString("token", token).apply()',
            "SharedPreferences",
            "EncryptedSharedPreferences",
        ),
    ],
)
def test_sensitive_values_in_plain_storage(path: str, line: str, store: str, secure: str) -> None:
    issues = _issues(path, line + "\n", "S06")

    assert len(issues) == 1
    issue = issues[0]
    assert (issue.category, issue.severity, issue.line) == ("security", "high", 1)
    assert f"`{store}`" in issue.description
    assert secure in issue.description
    assert "CWE-922" in issue.references


def test_plain_storage_of_non_sensitive_values_is_fine() -> None:
    text = "await AsyncStorage.setItem('theme', theme);\n"
    assert _issues("app/Settings.js", text, "S06") == []


def test_storage_rule_skips_test_files() -> None:
    text = "await AsyncStorage.setItem('token', 'fake');\n"
    assert _issues("app/__tests__/session.test.js", text, "S06") == []


def test_gesture_detector_without_semantics_label() -> None:
    text = "\n".join(
        [
            "Widget build(BuildContext context) {",
            "  return GestureDetector(",
            "    onTap: _open,",
            "    child: const Icon(Icons.info),",
            "  );",
            "}",
            "",
        ]
    )
    issues = _issues("lib/info_button.dart", text, "A02")

    assert [(issue.line, issue.column, issue.category) for issue in issues] == [(2, 10, "accessibility")]
    assert "`GestureDetector`" in issues[0].description
    assert "semanticsLabel" in issues[0].description


def test_labelled_touchables_are_fine() -> None:
    flutter = "\n".join(
        [
            "Widget build(BuildContext context) {",
            "  return Semantics(",
            "    label: 'Open details',",
            "    child: GestureDetector(onTap: _open, child: const Icon(Icons.info)),",
            "  );",
            "}",
            "",
        ]
    )
    react_native = "\n".join(
        [
            "<TouchableOpacity",
            "  onPress={onSave}",
            '  accessibilityLabel="Save"',
            ">",
            "",
        ]
    )

    assert _issues("lib/info_button.dart", flutter, "A02") == []
    assert _issues("app/SaveButton.jsx", react_native, "A02") == []


def test_touchable_rule_covers_each_mobile_ecosystem() -> None:
    assert rule_ids_of(analyze_text("app/Save.jsx", "<TouchableOpacity onPress={onSave}>\n")) == ["A02"]
    assert rule_ids_of(analyze_text("ios/Menu.swift", "let close = UIButton(type: .system)\n")) == ["A02"]
    assert rule_ids_of(analyze_text("app/Menu.kt", "val logo = ImageView(context)\n")) == ["A02"]
    assert _issues("src/widgets.py", "button = UIButton(frame)\n", "A02") == []
