PONG = "Pong! 🏓"


class PingHandler:
    async def open(self, ctx, feature) -> bool:
        await ctx.answer()
        return await ctx.reply(PONG)

    async def handle_action(self, ctx, action, feature) -> bool:
        await ctx.answer()
        return await ctx.reply(PONG)

    async def handle_callback(self, ctx, token: str) -> bool:
        return False


def create_handler():
    return PingHandler()
