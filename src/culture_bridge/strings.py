from __future__ import annotations

from typing import Any

DEFAULT_LANGUAGE = "en"

UI_STRINGS: dict[str, dict[str, Any]] = {
    "en": {
        "title": "CultureBridge Pro",
        "dashboard_title": "Epistemic Transparency Dashboard",
        "task_title": "Human Composer Tasks",
        "proposition_title": "Propositions & Sketches",
        "no_sequence_data": "No sequence data",
        "piano_roll_caption": "Piano Roll Visualization",
        "play_ref": "Play Reference",
        "playing_ref": "Playing...",
        "playback_unavailable": "Audio output unavailable",
        "safety_desc": (
            "Generated sound is not music, but a diagnostic sonification. "
            "Sounds serve only as annotations of AI understanding state."
        ),
        "analysis_titles": {
            "geographic_origin": "Geographic Origin",
            "tonal_structure": "Tonal Structure",
            "ambiguity": "Ambiguity",
            "cultural_refusal": "Cultural Refusal",
        },
        "status_labels": {
            "UNDERSTOOD": "Understood",
            "MISUNDERSTOOD": "Misunderstood",
            "REFUSED": "Refused",
        },
    },
    "zh": {
        "title": "CultureBridge Pro",
        "dashboard_title": "认识论透明面板",
        "task_title": "作曲家决策任务",
        "proposition_title": "草案与短评",
        "no_sequence_data": "无序列数据",
        "piano_roll_caption": "钢琴卷帘可视化",
        "play_ref": "播放参考",
        "playing_ref": "播放中...",
        "playback_unavailable": "音频输出不可用",
        "safety_desc": "生成的声音不是音乐，而是诊断性注释。声音仅作为 AI 理解状态的提示。",
        "analysis_titles": {
            "geographic_origin": "地理来源",
            "tonal_structure": "音高结构",
            "ambiguity": "模糊性",
            "cultural_refusal": "文化拒绝",
        },
        "status_labels": {
            "UNDERSTOOD": "已理解",
            "MISUNDERSTOOD": "可能误解",
            "REFUSED": "文化拒绝",
        },
    },
}


def get_strings(lang: str | None) -> dict[str, Any]:
    return UI_STRINGS.get(lang or DEFAULT_LANGUAGE, UI_STRINGS[DEFAULT_LANGUAGE])
