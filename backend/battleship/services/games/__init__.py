"""Battleship rules and room bookkeeping.

Grid maths, fleet validation and the match engine never touch Flask or
Socket.IO; the directory, summary recorder and timers are the pieces the
socket handlers lean on to store rooms and report finished matches.
"""
