"""Softmax-visible Restricted Boltzmann Machine for rating prediction."""
