"""
Command sets: keyword tables for the command classifier.

Each set defines:
- name: Set identifier
- language: Language of the text the keywords are matched against
- case_sensitive: Whether keywords must match case exactly
- unknown_response: Response recorded when nothing matches
- commands: Ordered list (first match wins) of intent, keywords, response
"""
