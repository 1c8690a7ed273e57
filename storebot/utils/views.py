from typing import Optional, Sequence, Tuple, Union

import discord

# Buttons stay clickable after this; on_interaction routes them by custom_id.
VIEW_TIMEOUT = 900

ButtonSpec = Union[Tuple[str, str], Tuple[str, str, discord.ButtonStyle]]


def button_view(*rows: Sequence[ButtonSpec]) -> discord.ui.View:
    """Build a view of plain buttons; clicks are routed by custom_id."""
    view = discord.ui.View(timeout=VIEW_TIMEOUT)
    filled = [row for row in rows if row]
    for row_index, row in enumerate(filled[:5]):
        for item in row[:5]:
            label, target = item[0], item[1]
            style = item[2] if len(item) > 2 else discord.ButtonStyle.secondary
            if target.startswith(("http://", "https://")):
                button = discord.ui.Button(label=label, url=target, style=discord.ButtonStyle.link, row=row_index)
            else:
                button = discord.ui.Button(label=label, custom_id=target, style=style, row=row_index)
            view.add_item(button)
    return view


async def respond(
    interaction: discord.Interaction,
    embed: discord.Embed,
    view: Optional[discord.ui.View] = None,
    edit: bool = True,
    file: Optional[discord.File] = None,
) -> None:
    """Edit the clicked message when possible, otherwise send a new one."""
    kwargs = {"embed": embed}
    if view is not None:
        kwargs["view"] = view

    if interaction.response.is_done():
        if file is not None:
            kwargs["file"] = file
        await interaction.followup.send(**kwargs)
    elif edit and interaction.message is not None:
        if view is None:
            kwargs["view"] = None
        # Replaces any image attached by an earlier screen.
        kwargs["attachments"] = [file] if file is not None else []
        await interaction.response.edit_message(**kwargs)
    else:
        if file is not None:
            kwargs["file"] = file
        await interaction.response.send_message(**kwargs)


def page_row(prefix: str, page: int, total_pages: int) -> list:
    """Prev/next buttons for ``<prefix>:<n>`` callbacks; empty on a single page."""
    row = []
    if page > 1:
        row.append(("◀ Prev", f"{prefix}:{page - 1}"))
    if page < total_pages:
        row.append(("Next ▶", f"{prefix}:{page + 1}"))
    return row


def chunk(items: Sequence, size: int) -> list:
    return [list(items[i:i + size]) for i in range(0, len(items), size)]
