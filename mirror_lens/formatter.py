from mirror_lens.models import ProfileSnapshot, WeeklyInsights


def _pct(value: float) -> str:
    return f"{value * 100:.0f}%"


def format_profile_report(snapshot: ProfileSnapshot) -> str:
    """Format a profile snapshot into a Markdown report string."""
    cognitive = snapshot.cognitive_snapshot
    fear = snapshot.fear_snapshot
    insights = snapshot.insights_snapshot
    lens = cognitive.communication_lens

    sections = [
        f"# Communication Profile: {snapshot.user_id}\n",
        f"*Generated {snapshot.metadata.generated_at} · {snapshot.metadata.config_version}*\n",
        "## Cognitive Snapshot\n",
        f"- **Dominant streams**: {', '.join(cognitive.dominant_streams) or 'N/A'}",
        f"- **Shadow streams**: {', '.join(cognitive.shadow_streams) or 'N/A'}",
        f"- **Processing tendencies**: {', '.join(cognitive.processing_tendencies) or 'N/A'}",
        f"- **Blind spots**: {', '.join(cognitive.blind_spots) or 'N/A'}",
        f"- **Trigger probability**: {_pct(cognitive.trigger_probability_index)}",
        "",
        "| Lens | N | S | T | F |",
        "|---|---|---|---|---|",
    ]
    for name, axes in (("Incoming", lens.incoming), ("Outgoing", lens.outgoing)):
        sections.append(f"| {name} | {_pct(axes.N)} | {_pct(axes.S)} | {_pct(axes.T)} | {_pct(axes.F)} |")
    sections.append("")

    sections.append("## Fear Snapshot\n")
    sections.append(f"**Top 3**: {', '.join(fear.top3)}\n")
    for item in fear.fears:
        sections.append(f"- {item.key}: {_pct(item.pct)}")
    sections.append("")

    sections.append("## Insights\n")
    sections.append(f"*Mirror moments: {insights.mirror_moments}*\n")
    if insights.feed:
        for item in insights.feed:
            heart = " ♥" if item.liked else ""
            tags = f" `{'` `'.join(item.tags)}`" if item.tags else ""
            sections.append(f"- {item.icon} **{item.title}**{heart}: {item.snippet}{tags}")
    else:
        sections.append("No insights yet.")
    sections.append("")

    if insights.inner_dialogue_replay:
        sections.append("## Inner Dialogue Replay\n")
        sections.append("| Script | Reframe |")
        sections.append("|---|---|")
        for pair in insights.inner_dialogue_replay:
            sections.append(f"| {pair.script} | {pair.reframe} |")
        sections.append("")

    return "\n".join(sections)


def format_weekly_report(weekly: WeeklyInsights) -> str:
    sections = ["# Weekly Insights\n", weekly.summary + "\n"]
    if weekly.top_themes:
        sections.append(f"**Top themes**: {', '.join(weekly.top_themes)}\n")
    sections.append(f"*Mirror moments: {weekly.mirror_moments}*\n")
    for insight in weekly.insights:
        sections.append(f"- **{insight.title}** ({insight.category}): {insight.content}")
    return "\n".join(sections)
