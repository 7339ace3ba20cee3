"""BitTorrent peer wire protocol: messages, decoding and the handshake."""