"""Neighborhood-based collaborative filtering over sparse explicit ratings.

Core idea:
- Hold (userId, itemId, rating) triples in a sparse row/column store
- Split users into Train / TestKnown / TestUnknown with a fixed number of revealed ratings
- Fit Popularity, user-based CF or item-based CF models on Train
- Score predictions for the hidden ratings (RMSE / MAE / coverage)
"""
