PENDING_ECHO = "pending_echo"


class EchoHandler:
    async def handle_action(self, ctx, action, feature) -> bool:
        await ctx.answer()
        await ctx.reply("Please send the text you want me to echo back.")
        # следующее текстовое сообщение пользователя уйдёт в consume()
        ctx.user_data[PENDING_ECHO] = feature.id
        return True

    async def handle_callback(self, ctx, token: str) -> bool:
        return False


async def consume(ctx, text: str) -> bool:
    """Отвечает на текст, если пользователь ждёт эхо; иначе False"""
    if not ctx.user_data.pop(PENDING_ECHO, None):
        return False
    if not text or not text.strip():
        await ctx.reply("❗ Please send some text to echo back.", parse_mode=None)
        return True
    await ctx.reply(f"🔁 Echo: {text}", parse_mode=None)
    return True


def create_handler():
    return EchoHandler()
