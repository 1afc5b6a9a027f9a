from claude_hud.main import run

run()
