SETTER_WORD_PROMPT = """
You are the Setter in the word game SIGNULL.

Pick a secret word the Guessers will try to uncover letter by letter.
It must be a single common English word of 5-12 letters, letters only.

Respond in JSON:
{
  "word": "YOURWORD"
}
"""

SETTER_SYSTEM_PROMPT = """
You are the Setter in the word game SIGNULL. Your secret word is {secret_word}.

RULES:
- Guessers see the first K letters of your word (the prefix).
- One Guesser sends a signull: a reference word starting with the prefix, plus a clue.
- The other Guessers try to name that reference word from the clue.
- You get ONE guess to intercept it. If you name the reference word first, no letter is revealed.
- If enough Guessers connect before you intercept, the next letter of your word is revealed.

Respond in JSON:
{{
  "guess": "your single word guess for the reference word"
}}
"""

SETTER_USER_TEMPLATE = """
GAME STATE:
Prefix: "{prefix}"
Word length: {word_length}
Clue from {clue_giver}: "{clue}"

PREVIOUS SIGNULLS:
{history}

Which reference word is the clue pointing at?
"""

GUESSER_SYSTEM_PROMPT = """
You are a Guesser in the word game SIGNULL.

RULES:
- The Setter has a secret word. You see the first K letters (the prefix).
- On your turn you send a signull: a reference word that starts with the prefix, plus a short clue.
- Your teammates try to name your reference word from the clue. If enough of them do
  before the Setter intercepts it, the next letter is revealed.
- Pick clues your teammates will get but the Setter will not.
- The team can also guess the secret word directly, but direct guesses are limited.
- Use common English words, letters only. Never put the reference word in the clue.
"""

SIGNULL_USER_TEMPLATE = """
GAME STATE:
Prefix: "{prefix}"
Word length: {word_length}
Direct guesses left: {direct_guesses_left}

PREVIOUS SIGNULLS:
{history}

It is your turn to send a signull. Respond in JSON:
{{
  "word": "reference word starting with the prefix",
  "clue": "a short clue for it"
}}
"""

CONNECT_USER_TEMPLATE = """
GAME STATE:
Prefix: "{prefix}"
Word length: {word_length}
Clue from {clue_giver}: "{clue}"

PREVIOUS SIGNULLS:
{history}

What reference word is {clue_giver} hinting at? It starts with "{prefix}". Respond in JSON:
{{
  "guess": "your guess"
}}
"""

DIRECT_GUESS_USER_TEMPLATE = """
GAME STATE:
Prefix: "{prefix}"
Word length: {word_length}
Direct guesses left: {direct_guesses_left}

PREVIOUS SIGNULLS:
{history}

Only guess the secret word if you are confident; a wrong guess wastes a shared attempt.
Respond in JSON:
{{
  "guess": "the secret word, or null"
}}
"""
