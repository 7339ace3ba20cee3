"""Message Stream Encryption handshake, encrypted streams and a command-line tool."""