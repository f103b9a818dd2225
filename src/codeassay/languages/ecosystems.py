"""
Per-ecosystem keyword tables.

Rules and the duplication detector share one parameterized profile per
ecosystem instead of carrying a copy of each rule per framework.
"""

from __future__ import annotations

from dataclasses import dataclass
from types import MappingProxyType
from typing import Mapping


@dataclass(frozen=True, slots=True)
class EcosystemProfile:
    name: str
    # Exact callee names, or prefixes ending with "." (e.g. "console.").
    debug_calls: frozenset[str]
    # Acquire call (last dotted segment) -> calls that release it.
    resource_pairs: Mapping[str, tuple[str, ...]]
    # Substrings that make a line "substantive" for duplication extraction.
    substantive_markers: tuple[str, ...]
    duplication_suggestion: str
    # Plain key-value stores that must not hold credentials, and what to use instead.
    insecure_stores: tuple[str, ...] = ()
    secure_store: str = ""
    # Tappable widgets and the attributes that give them a screen-reader label.
    touchables: tuple[str, ...] = ()
    accessibility_labels: tuple[str, ...] = ()


def _pairs(**pairs: tuple[str, ...]) -> Mapping[str, tuple[str, ...]]:
    return MappingProxyType(dict(pairs))


_PROFILES: dict[str, EcosystemProfile] = {
    "python": EcosystemProfile(
        name="python",
        debug_calls=frozenset({"print", "breakpoint", "pdb.set_trace", "ipdb.set_trace", "pprint", "pprint.pprint"}),
        resource_pairs=_pairs(
            open=("close",),
            Timer=("cancel",),
            connect=("close", "disconnect"),
            subscribe=("unsubscribe",),
        ),
        substantive_markers=("def ", "class ", "lambda", "self.", "async ", "await "),
        duplication_suggestion="Consider refactoring duplicated code into reusable functions",
    ),
    "web": EcosystemProfile(
        name="web",
        debug_calls=frozenset({"console.", "alert"}),
        resource_pairs=_pairs(
            addEventListener=("removeEventListener",),
            setInterval=("clearInterval",),
            setTimeout=("clearTimeout",),
            requestAnimationFrame=("cancelAnimationFrame",),
            subscribe=("unsubscribe",),
            addListener=("removeListener", "remove"),
            observe=("disconnect", "unobserve"),
        ),
        substantive_markers=(
            "const ",
            "let ",
            "var ",
            "function",
            "=>",
            "export ",
            "useState",
            "useEffect",
            "<View",
            "<Text",
            "TouchableOpacity",
            "StyleSheet",
        ),
        duplication_suggestion="Consider creating shared components or custom hooks",
        insecure_stores=("AsyncStorage", "localStorage", "sessionStorage"),
        secure_store="react-native-keychain or an encrypted store",
        touchables=("TouchableOpacity", "TouchableHighlight", "TouchableWithoutFeedback", "Pressable"),
        accessibility_labels=("accessibilityLabel", "aria-label"),
    ),
    "flutter": EcosystemProfile(
        name="flutter",
        debug_calls=frozenset({"print", "debugPrint"}),
        resource_pairs=_pairs(
            StreamController=("close",),
            addListener=("removeListener",),
            periodic=("cancel",),
            listen=("cancel",),
        ),
        substantive_markers=(
            "Widget",
            "class ",
            "void ",
            "setState",
            "Navigator",
            "Scaffold",
            "Container",
            "Text(",
            "Column(",
            "Row(",
        ),
        duplication_suggestion="Consider extracting common widgets into reusable components",
        insecure_stores=("SharedPreferences",),
        secure_store="flutter_secure_storage",
        touchables=("GestureDetector", "InkWell"),
        accessibility_labels=("semanticsLabel", "semanticLabel", "Semantics("),
    ),
    "ios": EcosystemProfile(
        name="ios",
        debug_calls=frozenset({"print", "NSLog", "debugPrint", "dump"}),
        resource_pairs=_pairs(
            addObserver=("removeObserver",),
            scheduledTimer=("invalidate",),
            Timer=("invalidate",),
        ),
        substantive_markers=(
            "@interface",
            "@implementation",
            "class ",
            "func ",
            "var ",
            "let ",
            "UIViewController",
            "UIView",
            "UILabel",
        ),
        duplication_suggestion="Consider creating shared utility classes or extensions",
        insecure_stores=("UserDefaults", "NSUserDefaults"),
        secure_store="the Keychain",
        touchables=("UIButton", "UIImageView"),
        accessibility_labels=("accessibilityLabel",),
    ),
    "android": EcosystemProfile(
        name="android",
        debug_calls=frozenset(
            {"System.out.println", "System.err.println", "Log.d", "Log.v", "println", "printStackTrace"}
        ),
        resource_pairs=_pairs(
            registerReceiver=("unregisterReceiver",),
            addListener=("removeListener",),
            registerListener=("unregisterListener",),
            requestLocationUpdates=("removeUpdates",),
            bindService=("unbindService",),
            postDelayed=("removeCallbacks",),
            observe=("removeObserver", "removeObservers"),
        ),
        substantive_markers=(
            "public class",
            "private ",
            "protected ",
            "void ",
            "fun ",
            "val ",
            "Activity",
            "Fragment",
            "View",
            "TextView",
            "Button",
        ),
        duplication_suggestion="Consider creating shared utility classes or base classes",
        insecure_stores=("SharedPreferences",),
        secure_store="EncryptedSharedPreferences",
        touchables=("ImageButton", "ImageView"),
        accessibility_labels=("contentDescription",),
    ),
    "markup": EcosystemProfile(
        name="markup",
        debug_calls=frozenset(),
        resource_pairs=_pairs(),
        substantive_markers=("<",),
        duplication_suggestion="Consider extracting repeated markup into shared templates or partials",
    ),
    "style": EcosystemProfile(
        name="style",
        debug_calls=frozenset(),
        resource_pairs=_pairs(),
        substantive_markers=(":", "{"),
        duplication_suggestion="Consider consolidating repeated declarations into shared classes or variables",
    ),
}

GENERIC = EcosystemProfile(
    name="generic",
    debug_calls=frozenset(),
    resource_pairs=_pairs(),
    substantive_markers=(),
    duplication_suggestion="Consider refactoring duplicated code into reusable functions",
)

ECOSYSTEMS: tuple[str, ...] = tuple(_PROFILES)


def profile_for(ecosystem: str) -> EcosystemProfile:
    return _PROFILES.get(ecosystem, GENERIC)


def is_debug_call(name: str, profile: EcosystemProfile) -> bool:
    if name in profile.debug_calls:
        return True
    return any(prefix.endswith(".") and name.startswith(prefix) for prefix in profile.debug_calls)
