"""Services package: Gemini client, setup wizard and advice."""
